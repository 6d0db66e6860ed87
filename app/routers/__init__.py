from .attempt import router as attempt_router
from .proctoring import router as proctoring_router

routes = [
    attempt_router,
    proctoring_router,
]
