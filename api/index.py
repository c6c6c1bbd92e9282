# Serverless entry point: the platform serves the WSGI `app` defined here
import os
import sys

# Root modules (app, config, services) live one directory up
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app  # noqa: E402

__all__ = ['app']

if __name__ == "__main__":
    from config import settings
    app.run(debug=settings.DEBUG, host=settings.HOST, port=settings.PORT)
