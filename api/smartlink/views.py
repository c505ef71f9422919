"""HTML shown when a smart link has nothing to redirect to."""

import html

DEFAULT_TITLE = "No offer available"
DEFAULT_MESSAGE = (
    "There is no offer available right now. When every checkout is down "
    "we do not redirect anywhere."
)


def render_no_offer_page(message: str = DEFAULT_MESSAGE, title: str = DEFAULT_TITLE) -> str:
    title = html.escape(title)
    message = html.escape(message)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta name="robots" content="noindex">
  <title>{title}</title>
  <style>
    * {{ box-sizing: border-box; }}
    body {{
      font-family: system-ui, -apple-system, sans-serif;
      margin: 0;
      min-height: 100vh;
      display: flex;
      align-items: center;
      justify-content: center;
      background: #0f172a;
      color: #e2e8f0;
    }}
    .card {{
      max-width: 420px;
      padding: 2rem;
      text-align: center;
      background: #1e293b;
      border-radius: 12px;
      border: 1px solid #334155;
    }}
    h1 {{ font-size: 1.25rem; margin: 0 0 0.75rem; color: #f8fafc; }}
    p {{ margin: 0; color: #94a3b8; line-height: 1.5; }}
    .retry {{ margin-top: 1.5rem; }}
    a {{
      display: inline-block;
      padding: 0.5rem 1rem;
      background: #3b82f6;
      color: white;
      text-decoration: none;
      border-radius: 8px;
    }}
  </style>
</head>
<body>
  <div class="card">
    <h1>{title}</h1>
    <p>{message}</p>
    <p class="retry"><a href="javascript:location.reload()">Try again</a></p>
  </div>
</body>
</html>"""
