from fastapi import Depends
from sqlalchemy.orm import Session
from typing import Annotated
from app.database.database import get_db

# Request-scoped database session (one unit of work per request)
db_dependency = Annotated[Session, Depends(get_db)]
