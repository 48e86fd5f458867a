"""
Gunicorn configuration for the DogLog API.

Env vars that override defaults:
  PORT     — TCP port to bind (default: 8000)
  WORKERS  — number of worker processes (default: 2)

Run: gunicorn -c gunicorn.conf.py app.main:app
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Activation and attempt writes lock rows, so extra workers are safe.
workers = int(os.environ.get("WORKERS", "2"))

worker_class = "uvicorn.workers.UvicornWorker"

# Phones reconnect often when coming back online; keep sockets a little longer.
keepalive = 5

# Step generation waits on the completion API (AI_TIMEOUT_SECONDS) before falling back.
timeout = 60

loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
