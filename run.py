"""Development runner.
Usage: python run.py  (reads .env if present)
"""

from __future__ import annotations

import os

from civicdesk import create_app

app = create_app()

if __name__ == "__main__":  # pragma: no cover
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    app.run(debug=True, host=host, port=port)
