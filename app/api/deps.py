"""API dependencies."""

from typing import Annotated

from fastapi import Depends

from app.services.table_service import TableService, get_table_service

TableServiceDep = Annotated[TableService, Depends(get_table_service)]
