"""Shared test fixtures."""

import pytest

from shop_ledger.database.connection import DatabaseConnection
from shop_ledger.database.models import Customer, Part, Task, Vehicle
from shop_ledger.database.repository import Repository
from shop_ledger.database.schema import initialize_database
from shop_ledger.invoicing.reconciler import InvoiceReconciler


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


@pytest.fixture
def reconciler(repo):
    """Provide an invoice reconciler over the test repository."""
    return InvoiceReconciler(repo)


@pytest.fixture
def customer_id(repo):
    return repo.create_customer(Customer(name="Jane Driver", phone="555-0101"))


@pytest.fixture
def vehicle_id(repo, customer_id):
    return repo.create_vehicle(Vehicle(
        customer_id=customer_id, make="Honda", model="Civic",
        year="2015", license_plate="ABC-123",
    ))


@pytest.fixture
def make_part(repo):
    """Factory: create a part and return its id."""
    def _make(name="Oil Filter", quantity=10, price=5.0, **kwargs):
        return repo.create_part(Part(
            name=name, quantity=quantity, price=price, **kwargs
        ))
    return _make


@pytest.fixture
def make_task(repo, vehicle_id):
    """Factory: create a task on the test vehicle and return its id."""
    def _make(title="Brake job", **kwargs):
        kwargs.setdefault("vehicle_id", vehicle_id)
        return repo.create_task(Task(title=title, **kwargs))
    return _make
