"""Waiting-room HTML page."""

import json
from html import escape

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Waiting Room</title>
  <style>
    body {{ font-family: sans-serif; text-align: center; margin-top: 15%; }}
    #number {{ font-size: 3em; font-weight: bold; }}
  </style>
</head>
<body>
  <h1>You are in line</h1>
  <p>Your position</p>
  <div id="number">{rank}</div>
  <p>Please keep this page open. You will be let in automatically.</p>
  <script>
    const params = {params};
    const query = new URLSearchParams(params).toString();
    async function poll() {{
      try {{
        const res = await fetch('/api/v1/queue/rank?' + query);
        const data = await res.json();
        if (data.rank < 0) {{
          await fetch('/api/v1/queue/touch?' + query);
          window.location.reload();
          return;
        }}
        document.getElementById('number').innerText = data.rank;
      }} catch (e) {{
        console.error(e);
      }}
      setTimeout(poll, 3000);
    }}
    setTimeout(poll, 3000);
  </script>
</body>
</html>
"""


def render_waiting_room(queue: str, user_id: int, flight_id: int, rank: int) -> str:
    """Render the page shown to users who have not been admitted yet."""
    params = json.dumps({"queue": queue, "user_id": str(user_id), "flight_id": str(flight_id)})
    # Keep the JSON safe inside a <script> block
    params = params.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
    return PAGE_TEMPLATE.format(rank=escape(str(rank)), params=params)
