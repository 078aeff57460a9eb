"""
Numeración de facturas por (unidad de negocio, categoría de venta).

El contador vive en InvoiceNumberFormat.last_used_sequential_number y se
incrementa con la fila bloqueada (SELECT ... FOR UPDATE) dentro de la
transacción de la operación que emite la factura. El incremento solo es
visible cuando esa transacción hace commit; un rollback no consume número.
"""
from datetime import date
from typing import Callable, Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.config import settings
from app.common.exceptions import (
    InvoiceNumberAllocationError, InvoiceNumberFormatError, PersistenceError, ValidationError
)
from app.common.validators import (
    validate_separator, validate_sequential_length, MAX_SEPARATOR_LENGTH,
    MIN_SEQUENTIAL_LENGTH, MAX_SEQUENTIAL_LENGTH
)
from app.modules.business_units.models import BusinessUnit
from app.modules.sales_categories.models import SalesCategory
from app.modules.sales.models import InvoiceNumberFormat

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = {
    "use_year": True,
    "use_sales_category_code": True,
    "use_business_unit_code": True,
    "use_sequential_number": True,
    "separator": "-",
    "sequential_number_length": 4,
}


def format_invoice_number(
    number_format: InvoiceNumberFormat,
    sequential_number: int,
    business_unit_id: int,
    business_unit_code: Optional[str] = None,
    sales_category_code: Optional[str] = None,
    today: Optional[date] = None
) -> str:
    """
    Render: año(2) / código de categoría / código de unidad / secuencial,
    en ese orden, unidos por el separador.

    - La categoría se omite si su código está vacío.
    - La unidad sin código usa su id con 3 dígitos (7 -> "007").
    - El secuencial se rellena con ceros y nunca se trunca.
    """
    today = today or date.today()
    parts = []

    if number_format.use_year:
        parts.append(f"{today.year % 100:02d}")

    if number_format.use_sales_category_code and sales_category_code and sales_category_code.strip():
        parts.append(sales_category_code)

    if number_format.use_business_unit_code:
        if business_unit_code and business_unit_code.strip():
            parts.append(business_unit_code)
        else:
            parts.append(f"{business_unit_id:03d}")

    if number_format.use_sequential_number:
        parts.append(str(sequential_number).zfill(number_format.sequential_number_length or 0))

    return (number_format.separator or "").join(parts)


class InvoiceNumberAllocator:
    """
    Reserva el siguiente número de factura.

    No hace commit: el llamador controla la transacción. Dos llamadas
    concurrentes sobre la misma clave se serializan en el bloqueo de la fila;
    claves distintas bloquean filas distintas.
    """

    def __init__(self, db: Session, clock: Optional[Callable[[], date]] = None, max_retries: Optional[int] = None):
        self.db = db
        self.clock = clock or date.today
        self.max_retries = max_retries or settings.INVOICE_NUMBER_MAX_RETRIES

    def allocate(self, business_unit_id: int, sales_category_id: int) -> Tuple[str, int]:
        """
        Incrementa el contador de la clave y devuelve (número formateado, secuencial).

        Raises:
            InvoiceNumberAllocationError: si no se pudo bloquear/crear/actualizar el contador
        """
        try:
            number_format = self._lock_format(business_unit_id, sales_category_id)
            number_format.last_used_sequential_number = (number_format.last_used_sequential_number or 0) + 1
            sequential_number = number_format.last_used_sequential_number
            self.db.flush()
        except InvoiceNumberAllocationError:
            raise
        except SQLAlchemyError as e:
            logger.error(
                f"Invoice number allocation failed for business unit {business_unit_id}, "
                f"category {sales_category_id}: {e}"
            )
            raise InvoiceNumberAllocationError(business_unit_id, sales_category_id, str(e)) from e

        invoice_number = self.render(number_format, sequential_number)
        logger.info(
            f"Allocated invoice number {invoice_number} (seq {sequential_number}) "
            f"for business unit {business_unit_id}, category {sales_category_id}"
        )
        return invoice_number, sequential_number

    def render(self, number_format: InvoiceNumberFormat, sequential_number: int) -> str:
        business_unit = self.db.get(BusinessUnit, number_format.business_unit_id)
        category = self.db.get(SalesCategory, number_format.sales_category_id)
        return format_invoice_number(
            number_format,
            sequential_number,
            number_format.business_unit_id,
            business_unit_code=business_unit.code if business_unit else None,
            sales_category_code=category.code if category else None,
            today=self.clock()
        )

    def preview_next(self, business_unit_id: int, sales_category_id: int) -> str:
        """Número que saldría ahora, sin consumirlo."""
        number_format = self.get_format(business_unit_id, sales_category_id)
        if number_format is None:
            number_format = InvoiceNumberFormat(
                business_unit_id=business_unit_id,
                sales_category_id=sales_category_id,
                last_used_sequential_number=0,
                **DEFAULT_FORMAT
            )
        return self.render(number_format, (number_format.last_used_sequential_number or 0) + 1)

    def get_format(self, business_unit_id: int, sales_category_id: int) -> Optional[InvoiceNumberFormat]:
        return self.db.execute(
            select(InvoiceNumberFormat).where(
                InvoiceNumberFormat.business_unit_id == business_unit_id,
                InvoiceNumberFormat.sales_category_id == sales_category_id
            )
        ).scalar_one_or_none()

    def get_format_for_update(self, business_unit_id: int, sales_category_id: int) -> Optional[InvoiceNumberFormat]:
        return self.db.execute(
            select(InvoiceNumberFormat)
            .where(
                InvoiceNumberFormat.business_unit_id == business_unit_id,
                InvoiceNumberFormat.sales_category_id == sales_category_id
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_format(self, business_unit_id: int, sales_category_id: int) -> InvoiceNumberFormat:
        """
        Bloquea la fila de formato; si no existe la crea con los valores por defecto.

        La creación va en un savepoint: si otro proceso insertó la misma clave,
        la restricción única falla, se descarta el savepoint y se vuelve a leer.
        """
        for attempt in range(1, self.max_retries + 1):
            number_format = self.get_format_for_update(business_unit_id, sales_category_id)
            if number_format is not None:
                return number_format

            savepoint = self.db.begin_nested()
            try:
                number_format = InvoiceNumberFormat(
                    business_unit_id=business_unit_id,
                    sales_category_id=sales_category_id,
                    last_used_sequential_number=0,
                    **DEFAULT_FORMAT
                )
                self.db.add(number_format)
                self.db.flush()
                savepoint.commit()
                logger.info(
                    f"Created default invoice number format for business unit {business_unit_id}, "
                    f"category {sales_category_id}"
                )
                # Re-lock the row we just inserted
                return self.get_format_for_update(business_unit_id, sales_category_id)
            except IntegrityError:
                savepoint.rollback()
                logger.debug(
                    f"Concurrent format creation for business unit {business_unit_id}, "
                    f"category {sales_category_id}, retry {attempt}/{self.max_retries}"
                )

        raise InvoiceNumberAllocationError(
            business_unit_id, sales_category_id, "could not create or lock the number format"
        )


class InvoiceNumberFormatService:
    """Consulta y configuración del formato de numeración"""

    def __init__(self, db: Session, clock: Optional[Callable[[], date]] = None):
        self.db = db
        self.allocator = InvoiceNumberAllocator(db, clock=clock)

    def get_format(self, business_unit_id: int, sales_category_id: int) -> Optional[InvoiceNumberFormat]:
        return self.allocator.get_format(business_unit_id, sales_category_id)

    def preview_next_number(self, business_unit_id: int, sales_category_id: int) -> str:
        self._ensure_references(business_unit_id, sales_category_id)
        return self.allocator.preview_next(business_unit_id, sales_category_id)

    def configure_format(self, business_unit_id: int, sales_category_id: int, format_data) -> InvoiceNumberFormat:
        """
        Crear o actualizar el formato de la clave.

        Solo toca los toggles, el separador y la longitud; el contador
        last_used_sequential_number nunca se modifica aquí.

        Raises:
            InvoiceNumberFormatError: configuración inválida
            ValidationError: unidad o categoría inexistente
        """
        values = {**DEFAULT_FORMAT}
        try:
            self._ensure_references(business_unit_id, sales_category_id)

            number_format = self.allocator.get_format_for_update(business_unit_id, sales_category_id)
            if number_format is not None:
                values.update({field: getattr(number_format, field) for field in DEFAULT_FORMAT})
            values.update(format_data.model_dump(exclude_unset=True, exclude_none=True, include=set(DEFAULT_FORMAT)))
            self._validate(values)

            if number_format is None:
                number_format = InvoiceNumberFormat(
                    business_unit_id=business_unit_id,
                    sales_category_id=sales_category_id,
                    last_used_sequential_number=0,
                    **values
                )
                self.db.add(number_format)
            else:
                for field, value in values.items():
                    setattr(number_format, field, value)

            self.db.commit()
            self.db.refresh(number_format)
            logger.info(
                f"Invoice number format configured for business unit {business_unit_id}, "
                f"category {sales_category_id}: {values}"
            )
            return number_format

        except ValidationError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error configuring invoice number format: {e}", exc_info=True)
            raise PersistenceError("Error saving invoice number format") from e

    def _ensure_references(self, business_unit_id: int, sales_category_id: int):
        if not business_unit_id or business_unit_id <= 0 or not self.db.get(BusinessUnit, business_unit_id):
            raise ValidationError("Business unit not found")
        if not sales_category_id or sales_category_id <= 0 or not self.db.get(SalesCategory, sales_category_id):
            raise ValidationError("Sales category not found")

    @staticmethod
    def _validate(values: dict):
        if not any(values[flag] for flag in (
            "use_year", "use_sales_category_code", "use_business_unit_code", "use_sequential_number"
        )):
            raise InvoiceNumberFormatError("At least one invoice number component must be enabled")
        if not validate_separator(values["separator"]):
            raise InvoiceNumberFormatError(f"Separator must be at most {MAX_SEPARATOR_LENGTH} characters")
        if not validate_sequential_length(values["sequential_number_length"]):
            raise InvoiceNumberFormatError(
                f"Sequential number length must be between {MIN_SEQUENTIAL_LENGTH} and {MAX_SEQUENTIAL_LENGTH}"
            )
