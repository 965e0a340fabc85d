"""
carevault: Basic Usage Example

Persists a clinical store to disk with the sensitive partitions encrypted
under a session key, then shows what happens when the key is gone.
"""

import asyncio
import json
import shutil
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from carevault import CryptoSession, FileStore, PartitionedStorage, StorageConfig

DATA_DIR = Path("./example-clinical-data")


async def main():
    print("=" * 50)
    print("  carevault: Encrypted Clinical State")
    print("=" * 50)

    # One session per application run; the key never leaves memory
    session = CryptoSession()
    storage = PartitionedStorage(FileStore(DATA_DIR), session, StorageConfig())
    await storage.initialize()
    print(f"\nStorage mode: {storage.mode.value}")

    # What a persist middleware hands over: {"state": ..., "version": N}
    clinical_state = {
        "state": {
            "patients": [
                {"id": "p1", "firstName": "Ana", "lastName": "Silva",
                 "dateOfBirth": "1961-04-02", "conditions": ["hypertension", "diabetes"]},
            ],
            "assessments": [
                {"id": "a1", "patientId": "p1", "toolId": "phq9", "score": 11, "severity": "moderate"},
            ],
            "vitals": [
                {"id": "v1", "patientId": "p1", "type": "blood_pressure",
                 "value": {"systolic": 148, "diastolic": 94}, "unit": "mmHg"},
            ],
            "config": {"theme": "dark", "units": "metric"},
            "welcomed": True,
        },
        "version": 1,
    }

    key = storage.config.storage_key
    await storage.set_item(key, clinical_state)

    # Look at what actually landed on disk
    record = json.loads(await storage.store.get(key))
    print(f"\nRecord metadata: {record['metadata']}")
    for name, value in record["payload"]["state"].items():
        shown = value[:32] + "..." if isinstance(value, str) else value
        print(f"  {name}: {shown}")

    # Load it back through the adapter
    loaded = await storage.get_item(key)
    status = "PASS" if loaded == clinical_state else "FAIL"
    print(f"\n  [{status}] round trip")

    # Drop the session key: ciphertext partitions stay opaque, nothing crashes
    session.clear()
    opaque = await storage.get_item(key)
    unreadable = [n for n, v in opaque["state"].items() if isinstance(v, str)]
    print(f"\nAfter clear, unreadable partitions: {unreadable}")
    print(f"Stats: {storage.stats()}")
    print(f"Usage: {await storage.usage()}")

    # Cleanup
    shutil.rmtree(DATA_DIR, ignore_errors=True)
    print("\nCleaned up example files.")


if __name__ == "__main__":
    asyncio.run(main())
