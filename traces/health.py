from django.db import connection
from django.utils import timezone
from ninja import Router

router = Router(tags=['health'])


@router.api_operation(["GET", "HEAD"], "/health")
def live(request):
    """Liveness probe - is the app running?"""
    return {"status": "ok", "timestamp": timezone.now().isoformat()}


@router.api_operation(["GET", "HEAD"], "/ready", response={200: dict, 503: dict})
def ready(request):
    """Readiness probe - can the trace store be reached?"""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        checks = {"db": {"ok": True}}
        ok = True
    except Exception as exc:
        checks = {"db": {"ok": False, "reason": str(exc)}}
        ok = False

    status = "pass" if ok else "fail"
    return (200 if ok else 503, {"status": status, "checks": checks})
