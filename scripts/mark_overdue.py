import logging
import sys

from facility_ops.core.config import settings
from facility_ops.db.session import SessionLocal
from facility_ops.services.work_orders import mark_overdue_work_orders


def main() -> int:
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
    with SessionLocal() as db:
        marked = mark_overdue_work_orders(db)
    print(f"OK   {len(marked)} ordens de servico marcadas como vencidas")
    return 0


if __name__ == "__main__":
    sys.exit(main())
