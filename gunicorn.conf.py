# gunicorn.conf.py for the 5ocial API
import os

wsgi_app = "fivesocial.wsgi:application"

# Worker configuration. Requests are synchronous; each worker thread serves
# one request at a time and push fan-out runs on its own small pool.
workers = int(os.getenv("GUNICORN_WORKERS", 2))
worker_class = "gthread"
threads = int(os.getenv("GUNICORN_THREADS", 4))
timeout = int(os.getenv("GUNICORN_TIMEOUT", 60))
graceful_timeout = 30
keepalive = 5
max_requests = 1000
max_requests_jitter = 50

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

# Process naming
proc_name = "fivesocial-api"

# Bind address
bind = os.getenv("GUNICORN_BIND", f"0.0.0.0:{os.getenv('PORT', '8000')}")

# Behind the platform proxy
forwarded_allow_ips = "*"
