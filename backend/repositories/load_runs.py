"""
Load-run repository backed by SQLAlchemy/SQLite.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from domain.models import LoadResult, LoadRun, LoadSource
from repositories.models import LoadRunORM


def _load_run_from_orm(orm: LoadRunORM) -> LoadRun:
    return LoadRun(
        id=orm.id,
        source=LoadSource(orm.source),
        point_count=orm.point_count,
        diagnostics=list(orm.diagnostics or []),
        started_at=orm.started_at,
        finished_at=orm.finished_at,
    )


class LoadRunsRepository:
    """Append-only log of load cycles."""

    def record_run(
        self,
        session: Session,
        result: LoadResult,
        started_at: datetime,
        finished_at: Optional[datetime] = None,
    ) -> LoadRun:
        orm = LoadRunORM(
            source=result.source.value,
            point_count=len(result.points),
            diagnostics=list(result.diagnostics),
            started_at=started_at,
            finished_at=finished_at or datetime.utcnow(),
        )
        session.add(orm)
        session.commit()
        session.refresh(orm)
        return _load_run_from_orm(orm)

    def list_runs(self, session: Session, limit: int = 20) -> List[LoadRun]:
        rows = (
            session.query(LoadRunORM)
            .order_by(LoadRunORM.started_at.desc(), LoadRunORM.id.desc())
            .limit(limit)
            .all()
        )
        return [_load_run_from_orm(r) for r in rows]

    def latest_run(self, session: Session) -> Optional[LoadRun]:
        runs = self.list_runs(session, limit=1)
        return runs[0] if runs else None
