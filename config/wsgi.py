import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_wsgi_application()

from traces.startup import verify_trace_store  # noqa: E402

verify_trace_store()
