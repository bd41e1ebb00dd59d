from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from .db import get_session
from .store import NotFound, Store, StoreError


def get_store(s: Session = Depends(get_session)) -> Store:
    return Store(s)


def store_http_error(e: StoreError) -> HTTPException:
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))
