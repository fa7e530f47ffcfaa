import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_asgi_application()

# Refuse to serve if the trace store is unreachable at startup
from traces.startup import verify_trace_store  # noqa: E402

verify_trace_store()
