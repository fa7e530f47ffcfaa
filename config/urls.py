import logging

from django.urls import path
from ninja import NinjaAPI
from ninja.errors import ValidationError

from traces.api import router as runs_router
from traces.health import router as health_router

logger = logging.getLogger('traces')

api = NinjaAPI(title='X-Ray Trace API', version='1.0.0')
api.add_router("", runs_router)
api.add_router("", health_router)


def _describe(errors) -> str:
    parts = []
    for error in errors:
        location = '.'.join(str(part) for part in error.get('loc', ()) if part not in ('body', 'payload', 'filters'))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get('msg')))
    return '; '.join(parts)


@api.exception_handler(ValidationError)
def validation_error(request, exc):
    """Malformed request bodies and parameters answer 400 in the standard envelope."""
    return api.create_response(
        request,
        {'success': False, 'error': _describe(exc.errors)},
        status=400,
    )


@api.exception_handler(Exception)
def unhandled_error(request, exc):
    logger.exception(f'Unhandled error on {request.method} {request.path}: {exc}')
    return api.create_response(
        request,
        {'success': False, 'error': 'Internal server error'},
        status=500,
    )


urlpatterns = [
    path("api/", api.urls),
]
