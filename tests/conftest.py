"""Shared fixtures: every store test runs against both store implementations."""

import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

os.environ.setdefault("STORE_BACKEND", "memory")

import pytest
from mongomock_motor import AsyncMongoMockClient

from app.database import Database, get_store
from app.features.patients.models import PATIENT_COLLECTION, PATIENT_INDEXES, Patient
from app.features.patients.schemas import CreatePatientRequest
from app.features.patients.occupancy import OccupancyManager
from app.features.wards.models import WARD_COLLECTION, WARD_INDEXES, Ward
from app.features.wards.schemas import CreateWardRequest
from app.features.wards.service import WardService
from app.store import InMemoryDocumentStore, MongoDocumentStore


async def new_mongo_store(**kwargs) -> MongoDocumentStore:
    """MongoDB store on an in-process mock server, committing with document locks."""
    kwargs.setdefault("backoff", 0)
    store = MongoDocumentStore(
        AsyncMongoMockClient(), "ward_occupancy_test", use_transactions=False, **kwargs
    )
    await store.create_indexes(WARD_COLLECTION, WARD_INDEXES)
    await store.create_indexes(PATIENT_COLLECTION, PATIENT_INDEXES)
    return store


@pytest.fixture(params=["memory", "mongo"])
async def store(request):
    """Install a fresh store with no retry backoff for the test."""
    if request.param == "memory":
        store = InMemoryDocumentStore(backoff=0)
    else:
        store = await new_mongo_store()
    Database.store = store
    yield store
    await store.close()
    Database.store = None


@pytest.fixture
async def mongo_store():
    """Install a fresh MongoDB store for tests of its commit protocol."""
    store = await new_mongo_store()
    Database.store = store
    yield store
    await store.close()
    Database.store = None


async def make_ward(name: str = "Ward A", total_beds: int = 2) -> str:
    return await WardService.create_ward(
        CreateWardRequest(name=name, department="Internal Medicine", total_beds=total_beds)
    )


async def admit(ward_id: str, name: str = "Amina Bello", **fields) -> str:
    fields.setdefault("status", "admitted")
    return await OccupancyManager.create_patient(
        CreatePatientRequest(name=name, age=40, gender="female", phone="0800", ward_id=ward_id, **fields)
    )


async def load_ward(ward_id: str) -> Ward:
    return Ward.from_document(await get_store().get(WARD_COLLECTION, ward_id))


async def load_patient(patient_id: str) -> Patient:
    return Patient.from_document(await get_store().get(PATIENT_COLLECTION, patient_id))


async def assert_occupancy_matches():
    """Every ward's counter equals its number of admitted patients and fits its beds."""
    store = get_store()
    patients = await store.list(PATIENT_COLLECTION)
    for ward in await store.list(WARD_COLLECTION):
        admitted = [
            p for p in patients
            if p.get("ward_id") == ward["_id"] and p.get("status") == "admitted"
        ]
        assert ward["occupied_beds"] == len(admitted), ward["name"]
        assert ward["occupied_beds"] <= ward["total_beds"], ward["name"]
