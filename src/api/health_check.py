from fastapi import APIRouter


router = APIRouter(
    tags= ["Health"]
)


@router.get("/healthz", summary="Liveness check")
async def healthz():
    """
    Kiểm tra sống/chết cơ bản của tiến trình.
    """
    return {"status": "ok"}
