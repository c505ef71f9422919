"""Offer-validity pattern tables.

Kept as data so new providers can be added without touching the prober.
Rules are evaluated in order and the first match wins, so provider-specific
rules go before generic ones.
"""

import re
from dataclasses import dataclass
from typing import List, Pattern, Tuple


# Only the head of a response body is inspected.
BODY_SCAN_LIMIT = 80_000


@dataclass(frozen=True)
class UrlRule:
    """Final-URL regex that signals a withdrawn offer."""

    pattern: Pattern
    reason: str
    platform: str


@dataclass(frozen=True)
class PhraseGroup:
    """Literal phrases (lower case) that appear on "offer ended" pages."""

    phrases: Tuple[str, ...]
    reason: str
    platform: str


@dataclass(frozen=True)
class ThinPageRule:
    """Provider page that is too small and has no checkout form."""

    platform: str
    max_length: int
    checkout_markers: Tuple[str, ...]
    reason: str


def _re(expr: str) -> Pattern:
    return re.compile(expr, re.IGNORECASE)


# ---------------------------------------------------------------------------
# Final URL
# ---------------------------------------------------------------------------

URL_RULES: List[UrlRule] = [
    # Hotmart error page is the main signal
    UrlRule(_re(r"pay\.hotmart\.com/error"), "Hotmart checkout inactive (error URL)", "hotmart"),
    UrlRule(_re(r"hotmart\.com/error\?"), "Hotmart checkout inactive (error URL)", "hotmart"),
    UrlRule(_re(r"errorMessage="), "Hotmart checkout inactive (error URL)", "hotmart"),
    UrlRule(
        _re(r"hotmart\.com.*(unavailable|closed|expired|encerrad|indisponivel)"),
        "Hotmart checkout inactive (error URL)",
        "hotmart",
    ),
    UrlRule(
        _re(r"eduzz\.com.*(unavailable|closed|expired|encerrad|indisponivel|not.?found|404)"),
        "Eduzz checkout inactive",
        "eduzz",
    ),
    UrlRule(_re(r"mono\.eduzz\.com.*(unavailable|closed|expired)"), "Eduzz checkout inactive", "eduzz"),
    UrlRule(
        _re(r"/(offer|checkout|product|produto|oferta)s?[-_/](unavailable|expired|closed|encerrad[ao]|indisponivel)"),
        "Offer unavailable (URL marker)",
        "generic",
    ),
]


# ---------------------------------------------------------------------------
# Response body
# ---------------------------------------------------------------------------

BODY_PHRASE_GROUPS: List[PhraseGroup] = [
    PhraseGroup(
        phrases=(
            # Portuguese
            "vendas deste produto estão temporariamente encerradas",
            "vendas deste produto estao temporariamente encerradas",
            "agradecemos o interesse, mas as vendas",
            "ofertas encerradas",
            "oferta encerrada",
            "checkout indisponível",
            "checkout indisponivel",
            "produto indisponível",
            "produto indisponivel",
            "esta oferta não está disponível",
            "esta oferta nao esta disponivel",
            "link expirado",
            "promoção encerrada",
            "promocao encerrada",
            # English
            "sales of this product are temporarily closed",
            "thank you for your interest, but sales",
            "product is not available",
            "offer closed",
            "offer is closed",
            "this offer is not available",
            "checkout unavailable",
            "expired link",
        ),
        reason="Hotmart offer ended",
        platform="hotmart",
    ),
    PhraseGroup(
        phrases=(
            "página não encontrada",
            "pagina nao encontrada",
            "page not found",
            "404 not found",
            "erro 404",
            "error 404",
            "não foi possível encontrar",
            "nao foi possivel encontrar",
        ),
        reason="Page not found",
        platform="generic",
    ),
]

# Active Hotmart checkouts are usually > 50KB of HTML, error pages < 10KB.
THIN_PAGE_RULES: List[ThinPageRule] = [
    ThinPageRule(
        platform="hotmart",
        max_length=15_000,
        checkout_markers=(
            'name="cardnumber"',
            'name="card_number"',
            "payment-method",
            "cartão de crédito",
            "credit card",
            "método de pagamento",
            "payment methods",
            "seu email",
            "your email",
        ),
        reason="Hotmart page without checkout form",
    ),
]


# ---------------------------------------------------------------------------
# Platform detection
# ---------------------------------------------------------------------------

PLATFORM_MARKERS = {
    "hotmart": ("hotmart.com", "pay.hotmart"),
    "eduzz": ("eduzz.com", "mono.eduzz"),
}
