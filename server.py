"""
MinDee: Minimal IndieAuth Authorization Endpoint in Python
----------------------------------------------------------
Features:
- IndieAuth / OAuth 2.0 authorization request validation (response_type=code)
- PKCE required, S256 only
- Scope syntax checks (RFC 6749 section 3.3)
- Optional `me` profile URL, canonicalised and validated
- Consent screen pre-filled from the validated request
- Errors redirected to the client, or shown to the user when the client
  identifier / redirect URI can't be trusted

Stack:
- Flask
- Authlib (OAuth 2.0 error vocabulary, scope and PKCE helpers)

Run:
  python3 -m venv .venv && source .venv/bin/activate
  pip install -e .
  python server.py  # starts on http://127.0.0.1:8000

Test the flow:
  1) python make_request.py  (or GET /dev/pkce with ENABLE_DEV_ENDPOINTS=1)
  2) Open the printed /authorize URL in a browser

Notes:
- Nothing is stored: no users, clients or codes. The consent form is rendered
  but handling its submission is not part of this server yet.

This file intentionally keeps templates inline (render_template_string) so you can run from one file.
"""
from __future__ import annotations
import os
import logging
import logging.config
import sys

from flask import Flask, request, redirect, abort, jsonify, render_template_string

from authorization import (
    APP_NAME, BadRequestPage, ErrorRedirect, ConsentContext, generate_pkce_pair,
    validate_authorization_request,
)

# ----------------------
# Logging
# ----------------------
LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": LOG_FORMAT, "datefmt": LOG_DATE_FORMAT},
    },
    "handlers": {
        "default": {
            "formatter": "default",
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
        },
    },
    "root": {
        "level": os.environ.get("LOG_LEVEL", "INFO").upper(),
        "handlers": ["default"],
    },
}

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)

# ----------------------
# Flask Setup
# ----------------------
app = Flask(__name__)
app.secret_key = os.environ.get("APP_SECRET", os.urandom(32))
app.config["APP_NAME"] = APP_NAME
app.config["ENABLE_DEV_ENDPOINTS"] = os.environ.get("ENABLE_DEV_ENDPOINTS", "").lower() in ("1", "true", "yes", "on")

# ----------------------
# Templates
# ----------------------
BAD_REQUEST_TEMPLATE = """
<!doctype html>
<html lang="en-GB">
    <head>
        <meta charset="utf-8">
        <title>{{ app_name }}: Bad Request from Client</title>
    </head>
    <body>
        <h1>Bad Request from Client</h1>
        <p>The Client Identifier and/or return URL were send incorrectly. The values below were given.</p>
        <dl>
            <dt><code>client_id</code></dt>
            <dd>{% if client_id is none %}None{% else %}<code>{{ client_id }}</code>{% endif %}</dd>
            <dt><code>redirect_uri</code></dt>
            <dd>{% if redirect_uri is none %}None{% else %}<code>{{ redirect_uri }}</code>{% endif %}</dd>
        </dl>
    </body>
</html>
"""

CONSENT_TEMPLATE = """
<!doctype html>
<html lang="en-GB">
<meta charset="utf-8">
<title>Authorize {{ app_name }}</title>
<style>
  body { font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; background:#0b1020; color:#e8ecf1; display:flex; align-items:center; justify-content:center; min-height:100vh; margin:0; }
  .card { background:#151b2f; border:1px solid #26314f; border-radius:14px; padding:26px 30px; width: 680px; box-shadow: 0 10px 30px rgba(0,0,0,.35); }
  .url { font-family: ui-monospace, monospace; color:#dbe7ff; }
  ul { list-style:none; padding:0; }
  li { padding:8px 0; border-bottom:1px solid #26314f; }
  input { padding:8px 10px; border-radius:8px; border:1px solid #3d4f77; background:#0f1426; color:#e8ecf1; }
  .row { display:flex; gap:12px; align-items:center; }
  .btn { padding:10px 14px; background:#2d6cdf; color:#fff; border:none; border-radius:10px; font-weight:600; }
  .btn.secondary { background:#32405f; color:#dbe7ff; border:1px solid #3d4f77; }
</style>
<div class="card">
  <form method="POST">
    <p>You are logging in to <span class="url">{{ ctx.client_id }}</span>.</p>
    <p>The URL <label for="me">you will be identified as</label> is:</p>
    <input type="url" name="me" id="me" value="{{ ctx.me }}">
    <p>The following scopes will be granted, uncheck any you do not wish to grant:</p>
    <ul>
      <li><label for="scope_profile"><input type="checkbox" name="scope[]" id="scope_profile" value="profile"{% if 'profile' in ctx.scopes %} checked{% endif %}> profile</label></li>
      <li><label for="scope_email"><input type="checkbox" name="scope[]" id="scope_email" value="email"{% if 'email' in ctx.scopes %} checked{% endif %}> email</label></li>
      {% for item in ctx.scopes if item not in ('profile', 'email') %}
      <li><input type="checkbox" name="scope[]" value="{{ item }}" checked> {{ item }}</li>
      {% endfor %}
      <li><label for="custom_scopes">Custom (space delimited):</label> <input type="text" name="custom_scopes" id="custom_scopes"></li>
    </ul>
    <p>The following profile will be shared if the profile and optionally email scopes are granted:</p>
    <label for="profile_name">Name:</label>
    <input type="text" name="profile_name" id="profile_name">
    <label for="profile_photo">Avatar URL:</label>
    <input type="url" name="profile_photo" id="profile_photo">
    <label for="profile_url">Homepage URL:</label>
    <input type="url" name="profile_url" id="profile_url">
    <label for="profile_email">Email address:</label>
    <input type="email" name="profile_email" id="profile_email">
    <p>You will be redirected to <span class="url">{{ ctx.redirect_uri }}</span> from here.</p>
    <div class="row">
      <button class="btn secondary" type="submit" name="deny">Cancel</button>
      <label for="password">Password:</label>
      <input type="password" name="password" id="password">
      <button class="btn" type="submit">Authorize</button>
    </div>
  </form>
</div>
</html>
"""


def _request_params() -> dict[str, str]:
    # Last value wins when a parameter is repeated
    return {key: request.args.getlist(key)[-1] for key in request.args}


# ----------------------
# IndieAuth: /authorize
# ----------------------
@app.route('/authorize', methods=['GET'])
def authorize():
    outcome = validate_authorization_request(_request_params())
    if isinstance(outcome, BadRequestPage):
        body = render_template_string(
            BAD_REQUEST_TEMPLATE,
            app_name=app.config["APP_NAME"],
            client_id=outcome.client_id,
            redirect_uri=outcome.redirect_uri,
        )
        return body, 400
    if isinstance(outcome, ErrorRedirect):
        return redirect(outcome.location, code=302)
    if isinstance(outcome, ConsentContext):
        return render_template_string(CONSENT_TEMPLATE, app_name=app.config["APP_NAME"], ctx=outcome)
    raise TypeError(f"Unexpected authorization outcome: {outcome!r}")


@app.route('/health')
def health():
    # Lightweight readiness/liveness probe
    return jsonify({'status': 'ok'}), 200


# ----------------------
# PKCE helper (dev)
# ----------------------
@app.route('/dev/pkce')
def dev_pkce():
    # Gate behind ENABLE_DEV_ENDPOINTS
    if not app.config["ENABLE_DEV_ENDPOINTS"]:
        abort(404)
    verifier, challenge = generate_pkce_pair()
    return jsonify({'code_verifier': verifier, 'code_challenge': challenge, 'method': 'S256'})


# ----------------------
# Startup
# ----------------------
if __name__ == '__main__':
    host = os.environ.get('HOST', '127.0.0.1')
    port = int(os.environ.get('PORT', '8000'))
    base = f"http://{host}:{port}"
    logger.info("Starting %s on %s", APP_NAME, base)
    print(f"""
Quick test steps:
  1) python make_request.py --server {base}
  2) Open the printed /authorize URL in a browser, for example:
     {base}/authorize?client_id=https%3A%2F%2Fapp.example.com%2F&redirect_uri=https%3A%2F%2Fapp.example.com%2Fcallback&response_type=code&state=xyz&code_challenge_method=S256&code_challenge=<CHALLENGE>&scope=profile+email&me=example.com
  3) Invalid requests redirect back with ?error=...&error_description=...
""")
    app.run(debug=True, host=host, port=port)
