"""
MarketDesk Application
======================

A ready-to-run Flask application with every MarketDesk module enabled.

Run with:
    python app.py

Visit:
    http://localhost:5000/auth/login     - Sign in with Google
    http://localhost:5000/auth/me        - Current user and allowed pages
"""

import logging

from flask import Flask, jsonify

from marketdesk import MarketDesk
from marketdesk.core.config import Config

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

# Create Flask app
app = Flask(__name__)

# Initialize MarketDesk - this registers all modules automatically
marketdesk = MarketDesk(app)


@app.route('/health')
def health():
    return jsonify({'status': 'ok', 'modules': marketdesk.get_registered_modules()})


if __name__ == '__main__':
    print("\n" + "=" * 60)
    print("MarketDesk")
    print("=" * 60)
    print(f"Sign in:         http://localhost:{Config.port}/auth/login")
    print(f"Health:          http://localhost:{Config.port}/health")
    print("=" * 60 + "\n")

    app.run(host='0.0.0.0', port=Config.port, debug=True)
