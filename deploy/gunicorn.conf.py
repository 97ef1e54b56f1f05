bind = "127.0.0.1:8000"
# The scheduler lives inside the app process; more workers would run the job more than once.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
graceful_timeout = 30
keepalive = 5
loglevel = "info"
accesslog = "-"
errorlog = "-"
