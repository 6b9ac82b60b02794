"""
Quick API smoke check against a running Civic Events server.
Walks through: register admin, login, create category, create event,
rate it, list events, delete it.

Usage:
    API_BASE=http://localhost:3000 ADMIN_CODE=... python scripts/smoke_api.py
"""

import os
import uuid

import requests

BASE = os.getenv("API_BASE", "http://localhost:3000")
ADMIN_CODE = os.getenv("ADMIN_CODE", "")

email = f"smoke-{uuid.uuid4().hex[:8]}@example.com"

# 1) Health
r = requests.get(f"{BASE}/health")
print("HEALTH:", r.status_code, r.json())

# 2) Register an admin (falls back to a plain user without ADMIN_CODE)
payload = {"email": email, "password": "pass12345", "name": "Smoke Test"}
if ADMIN_CODE:
    payload.update({"role": "ADMIN", "adminCode": ADMIN_CODE})
r = requests.post(f"{BASE}/api/auth/register", json=payload)
print("REGISTER:", r.status_code, r.json())

# 3) Login with same credentials
r = requests.post(f"{BASE}/api/auth/login", json={"email": email, "password": "pass12345"})
print("LOGIN:", r.status_code, r.json())
token = r.json().get("token")
headers = {"Authorization": f"Bearer {token}"}

# 4) Create a category (admin only)
r = requests.post(f"{BASE}/api/categories", json={"name": "Smoke"}, headers=headers)
print("CREATE CATEGORY:", r.status_code, r.json())
category_id = r.json().get("id") if r.ok else None

# 5) Create a new event
r = requests.post(f"{BASE}/api/events", json={
    "title": "Smoke Test Event",
    "description": "Simple test",
    "location": "Town Hall",
    "startAt": "2030-10-20T10:00:00Z",
    "endAt": "2030-10-20T11:00:00Z",
    "categoryId": category_id,
}, headers=headers)
print("CREATE EVENT:", r.status_code, r.json())
event_id = r.json().get("id")

# 6) Rate it twice; the second rating replaces the first
for stars in (3, 5):
    r = requests.post(f"{BASE}/api/events/{event_id}/rate", json={"stars": stars}, headers=headers)
    print("RATE:", r.status_code, r.json())

# 7) List all events
r = requests.get(f"{BASE}/api/events", params={"search": "smoke"})
print("LIST EVENTS:", r.status_code, [(e["title"], e["averageRating"], e["ratingsCount"]) for e in r.json()])

# 8) Clean up
r = requests.delete(f"{BASE}/api/events/{event_id}", headers=headers)
print("DELETE EVENT:", r.status_code, r.json())
