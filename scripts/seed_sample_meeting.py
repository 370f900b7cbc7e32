"""
Сидинг тестового города и заседания в БД.
Используется для ручных проверок колбэков и опроса решений в dev.
Схема должна быть создана заранее: alembic upgrade head.
"""

from __future__ import annotations

import sys
from datetime import timedelta

from council_tasks.common.time import utc_now_naive
from council_tasks.domain.enums import NotificationBehavior
from council_tasks.storage.db import db_session
from council_tasks.storage.models import AdministrativeBody, City, CouncilMeeting, Subject


def main(city_id: str = "athens", meeting_id: str = "dev-meeting") -> int:
    with db_session() as s:
        if s.get(City, city_id) is None:
            s.add(City(id=city_id, name="Δήμος Αθηναίων", diavgeia_uid="6104"))
            s.flush()

        body = AdministrativeBody(
            city_id=city_id,
            name="Δημοτικό Συμβούλιο",
            diavgeia_unit_ids=[],
            notification_behavior=NotificationBehavior.disabled,
        )
        s.add(body)
        s.flush()

        s.add(
            CouncilMeeting(
                city_id=city_id,
                id=meeting_id,
                name="Τακτική συνεδρίαση",
                date_time=utc_now_naive() - timedelta(days=2),
                administrative_body_id=body.id,
            )
        )
        s.flush()
        s.add(
            Subject(
                city_id=city_id,
                meeting_id=meeting_id,
                name="Έγκριση προϋπολογισμού",
                agenda_item_index=1,
            )
        )

    print("Seeded meeting:", city_id, meeting_id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(*sys.argv[1:3]))
