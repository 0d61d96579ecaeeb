# Gunicorn config for the webhook server
bind = '0.0.0.0:5000'
# one process keeps the in-memory credential store consistent; set REDIS_URL
# before raising the worker count
workers = 1
threads = 4
# recognizer uploads run on the event pool, so request handling stays short
timeout = 60
accesslog = '-'  # stdout
errorlog = '-'   # stderr
