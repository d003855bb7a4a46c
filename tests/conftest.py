import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stakepool.core.ledger import SqlReserveLedger
from stakepool.core.staking.events import EventBus
from stakepool.core.staking.service import PositionLocks, StakingService
from stakepool.database import init_db

DAY = 86400
TOKEN = 10**18

STAKER = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
RESERVE = "0x9999999999999999999999999999999999999999"


class FakeClock:
    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def ledger(db):
    return SqlReserveLedger(db, RESERVE)


@pytest.fixture
def svc(db, ledger, bus, clock):
    return StakingService(db, ledger, events=bus, clock=clock, locks=PositionLocks())


@pytest.fixture
def package_id(svc):
    """rate=3, decimal=0 (3%/year), min=100 tokens, lock=30 days"""
    pid = svc.packages.add_package(3, 0, 100 * TOKEN, 30 * DAY)
    svc.db.commit()
    return pid


@pytest.fixture
def funded(ledger, db):
    ledger.mint(STAKER, 2000 * TOKEN)
    ledger.mint(RESERVE, 100 * TOKEN)
    db.commit()
