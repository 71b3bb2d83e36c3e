from datetime import datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db import Base
from domain.models import LoadResult, LoadSource, LocationCategory, PointOfInterest
from repositories import LoadRunsRepository


def _session():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine)()


def test_record_and_list_runs_newest_first():
    repo = LoadRunsRepository()
    session = _session()
    t0 = datetime(2025, 1, 1, 12, 0, 0)
    poi = PointOfInterest(id=1, name="H", category=LocationCategory.HOSPITAL, lat=3.0, lon=101.0, address="KL")

    repo.record_run(session, LoadResult(points=[poi], source=LoadSource.REMOTE), started_at=t0)
    repo.record_run(
        session,
        LoadResult(points=[], source=LoadSource.FALLBACK, diagnostics=["RemoteUnavailable: down"]),
        started_at=t0 + timedelta(minutes=5),
    )

    runs = repo.list_runs(session)
    assert [r.source for r in runs] == [LoadSource.FALLBACK, LoadSource.REMOTE]
    assert runs[0].diagnostics == ["RemoteUnavailable: down"]
    assert runs[1].point_count == 1
    assert runs[1].finished_at is not None
    assert repo.latest_run(session).id == runs[0].id


def test_latest_run_is_none_when_empty():
    assert LoadRunsRepository().latest_run(_session()) is None
