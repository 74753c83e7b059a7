from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from .utils import ApiSuccess


router = APIRouter()


@router.get('/', response_class=PlainTextResponse)
async def root():
    return 'Zoom RTMS Server is up and running.'


@router.get('/health', response_model=ApiSuccess)
async def health():
    return ApiSuccess(results="OK")
