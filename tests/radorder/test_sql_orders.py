from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from src.radorder.domain.models.order import Order, OrderEvent, OrderEventType, OrderNote, OrderStatus
from src.radorder.infra.db import inmemory as inmemory_repos
from src.radorder.infra.db.bootstrap import init_sql_repositories
from src.radorder.infra.db.models import Base
from src.radorder.infra.db.session import create_sqlalchemy_engine, create_sqlalchemy_session_factory
from src.radorder.infra.db.sql_orders import SqlOrderRepository


@pytest.fixture
def repository(tmp_path):
    engine = create_sqlalchemy_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    Base.metadata.create_all(engine)
    return SqlOrderRepository(create_sqlalchemy_session_factory(engine))


def _order(referring, radiology, status=OrderStatus.PENDING_SIGNATURE, offset=0):
    created = datetime(2024, 5, 1, tzinfo=timezone.utc) + timedelta(minutes=offset)
    user_id = uuid4()
    return Order(
        id=uuid4(),
        order_number=f"ROP-{uuid4().hex[:8].upper()}",
        patient_id=uuid4(),
        referring_organization_id=referring,
        radiology_organization_id=radiology,
        created_by_user_id=user_id,
        status=status,
        cpt_code="73221",
        icd10_codes="M25.511,S43.431A",
        created_at=created,
        updated_at=created,
        notes=[OrderNote(user_id=user_id, note="Call patient first", created_at=created)],
        history=[OrderEvent(event_type=OrderEventType.CREATED, user_id=user_id, new_status=status, created_at=created)],
    )


def test_save_and_reload(repository):
    order = _order(uuid4(), uuid4())
    repository.save(order)

    loaded = repository.get(order.id)
    assert loaded is not None
    assert loaded.order_number == order.order_number
    assert loaded.icd10_code_list == ["M25.511", "S43.431A"]
    assert loaded.notes[0].note == "Call patient first"
    assert loaded.history[0].event_type == OrderEventType.CREATED
    assert repository.get_by_number(order.order_number).id == order.id
    assert repository.get(uuid4()) is None


def test_save_updates_existing_row(repository):
    order = _order(uuid4(), uuid4())
    repository.save(order)

    order.status = OrderStatus.COMPLETE
    order.insurance_provider = "Acme Health"
    repository.save(order)

    loaded = repository.get(order.id)
    assert loaded.status == OrderStatus.COMPLETE
    assert loaded.insurance_provider == "Acme Health"


def test_list_by_filters(repository):
    referring, radiology = uuid4(), uuid4()
    first = _order(referring, radiology, OrderStatus.COMPLETE, offset=0)
    second = _order(referring, radiology, OrderStatus.PENDING_PATIENT_INFO, offset=5)
    other = _order(uuid4(), uuid4(), offset=10)
    for order in (first, second, other):
        repository.save(order)

    newest_first = list(repository.list_by_filters(referring_organization_id=referring))
    assert [o.id for o in newest_first] == [second.id, first.id]

    visible = list(
        repository.list_by_filters(
            radiology_organization_id=radiology,
            exclude_statuses=[OrderStatus.PENDING_PATIENT_INFO],
        )
    )
    assert [o.id for o in visible] == [first.id]

    pending = list(repository.list_by_filters(statuses=[OrderStatus.PENDING_PATIENT_INFO]))
    assert [o.id for o in pending] == [second.id]


def test_init_sql_repositories_swaps_order_repository(tmp_path, monkeypatch):
    monkeypatch.setattr(inmemory_repos, "order_repository", inmemory_repos.order_repository)

    swapped = init_sql_repositories(f"sqlite:///{tmp_path / 'swap.db'}", force=True)

    assert swapped is True
    assert isinstance(inmemory_repos.order_repository, SqlOrderRepository)


def test_init_sql_repositories_is_noop_when_disabled(monkeypatch):
    from src.radorder.config import settings

    monkeypatch.setattr(settings, "use_sql_repos", False)
    before = inmemory_repos.order_repository

    assert init_sql_repositories("sqlite://") is False
    assert inmemory_repos.order_repository is before
