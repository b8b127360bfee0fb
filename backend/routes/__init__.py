"""FastAPI endpoints.

Endpoint groups under /api: health, rooms, tasks, messages, archives (plus
the bulk PUT /api/{collection} replace). The versioned blob store lives
outside /api under /contents/{path}.
"""

from fastapi import APIRouter

from .archives import router as archives_router
from .files import router as files_router
from .health import router as health_router
from .messages import router as messages_router
from .rooms import router as rooms_router
from .tasks import router as tasks_router

router = APIRouter()
router.include_router(health_router)
router.include_router(rooms_router)
router.include_router(tasks_router)
router.include_router(messages_router)
# archives last: it owns the catch-all PUT /{collection}
router.include_router(archives_router)

contents_router = files_router
