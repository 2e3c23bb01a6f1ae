#!/usr/bin/env python3
"""E2E demo script for the image API

Usage:
    # Terminal 1: Seed vehicles and start the API
    python scripts/seed_vehicles.py
    uvicorn api.main:app --reload

    # Terminal 2: Run demo
    python scripts/demo_e2e.py

Environment variables:
    API_URL - Base URL for the API (default: http://localhost:8000)
    VEHICLE_ID - Seeded vehicle to attach images to (default: toyota-corolla-2024)
    ADMIN_TOKEN - Bearer credential with write access (default: base64 "1:admin@example.com")
    SOURCE_URL - Optional remote image to fetch by URL
"""

from __future__ import annotations

import base64
import os
import sys
import time
from datetime import datetime, timezone

import httpx

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

API_URL = os.getenv("API_URL", "http://localhost:8000")
VEHICLE_ID = os.getenv("VEHICLE_ID", "toyota-corolla-2024")
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", base64.b64encode(b"1:admin@example.com").decode())
SOURCE_URL = os.getenv("SOURCE_URL")
STARTUP_RETRY_SECONDS = 30
STARTUP_RETRY_INTERVAL = 2

# ---------------------------------------------------------------------------
# ANSI colors for terminal output
# ---------------------------------------------------------------------------

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BOLD = "\033[1m"
RESET = "\033[0m"


def timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def log_info(msg: str) -> None:
    print(f"[{timestamp()}] {msg}")


def log_success(msg: str) -> None:
    print(f"[{timestamp()}] {GREEN}✓ {msg}{RESET}")


def log_fail(msg: str) -> None:
    print(f"[{timestamp()}] {RED}✗ {msg}{RESET}")


def log_warning(msg: str) -> None:
    print(f"[{timestamp()}] {YELLOW}⚠ {msg}{RESET}")


# ---------------------------------------------------------------------------
# Sample data for demo
# ---------------------------------------------------------------------------

# 1x1 transparent PNG
SAMPLE_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


# ---------------------------------------------------------------------------
# Demo runner
# ---------------------------------------------------------------------------

class DemoRunner:
    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=30.0)
        self.auth = {"Authorization": f"Bearer {ADMIN_TOKEN}"}
        self.owner = {"owner": VEHICLE_ID}
        self.image_ids: list[int] = []
        self.image_etag: str | None = None
        self.failed = False

    def run(self) -> bool:
        log_info(f"{BOLD}Starting image API demo...{RESET}")
        log_info(f"API URL: {self.base_url}")
        log_info(f"Vehicle: {VEHICLE_ID}")
        print()

        steps = [
            ("Health check", self.step_health_check),
            ("Clear existing images", self.step_clear_images),
            ("Upload images", self.step_upload_images),
            ("Fetch image by URL", self.step_fetch_remote),
            ("List images", self.step_list_images),
            ("Conditional GET", self.step_conditional_get),
            ("Delete one image", self.step_delete_image),
            ("Hero image", self.step_hero_image),
        ]

        for step_name, step_fn in steps:
            try:
                success = step_fn()
                if not success:
                    self.failed = True
                    log_fail(f"Step failed: {step_name}")
                    break
            except Exception as e:
                self.failed = True
                log_fail(f"Step failed: {step_name}: {e}")
                break

        self.client.close()
        print()
        if self.failed:
            log_fail(f"{BOLD}Demo failed!{RESET}")
            return False
        else:
            log_success(f"{BOLD}All checks passed!{RESET}")
            return True

    def step_health_check(self) -> bool:
        log_info("Checking API health...")

        start_time = time.time()
        while time.time() - start_time < STARTUP_RETRY_SECONDS:
            try:
                resp = self.client.get(f"{self.base_url}/health")
                if resp.status_code == 200:
                    log_success("Health check passed")
                    return True
            except httpx.ConnectError:
                pass
            except Exception as e:
                log_warning(f"Health check error: {e}")

            time.sleep(STARTUP_RETRY_INTERVAL)

        log_fail(f"API not healthy after {STARTUP_RETRY_SECONDS}s")
        return False

    def step_clear_images(self) -> bool:
        log_info("Clearing existing images...")

        resp = self.client.delete(f"{self.base_url}/images", params=self.owner, headers=self.auth)
        if resp.status_code == 404:
            log_fail(f"Vehicle {VEHICLE_ID} not found (run scripts/seed_vehicles.py first)")
            return False
        if resp.status_code != 200:
            log_fail(f"Expected 200, got {resp.status_code}: {resp.text[:200]}")
            return False

        if resp.json().get("imageUrlList") != "":
            log_fail("Expected an empty imageUrlList after clearing")
            return False

        log_success("Cleared images")
        return True

    def step_upload_images(self) -> bool:
        log_info("Uploading images...")

        for i in range(3):
            files = {"file": (f"photo-{i}.png", SAMPLE_PNG, "image/png")}
            resp = self.client.post(
                f"{self.base_url}/images", params=self.owner, files=files, headers=self.auth
            )
            if resp.status_code != 200:
                log_fail(f"Upload {i} failed: {resp.status_code}: {resp.text[:200]}")
                return False
            self.image_ids.append(resp.json()["imageId"])

        url_list = resp.json().get("imageUrlList", "")
        if len(url_list.split("|")) != 3:
            log_fail(f"Expected 3 URLs in imageUrlList, got: {url_list}")
            return False

        log_success(f"Uploaded {len(self.image_ids)} images: {self.image_ids}")
        return True

    def step_fetch_remote(self) -> bool:
        if not SOURCE_URL:
            log_warning("SOURCE_URL not set, skipping remote fetch")
            return True

        log_info(f"Fetching {SOURCE_URL}...")
        resp = self.client.post(
            f"{self.base_url}/images",
            params=self.owner,
            json={"sourceUrl": SOURCE_URL},
            headers=self.auth,
        )
        if resp.status_code != 200:
            log_fail(f"Remote fetch failed: {resp.status_code}: {resp.text[:200]}")
            return False

        self.image_ids.append(resp.json()["imageId"])
        log_success(f"Fetched remote image as {self.image_ids[-1]}")
        return True

    def step_list_images(self) -> bool:
        log_info("Listing images...")

        resp = self.client.get(f"{self.base_url}/images", params=self.owner)
        if resp.status_code != 200:
            log_fail(f"Expected 200, got {resp.status_code}")
            return False

        images = resp.json().get("images", [])
        slots = [img["sortOrder"] for img in images]
        if slots != sorted(slots) or [img["id"] for img in images] != self.image_ids:
            log_fail(f"Unexpected listing: {images}")
            return False

        log_success(f"Listed {len(images)} images in slots {slots}")
        return True

    def step_conditional_get(self) -> bool:
        log_info("Checking ETag revalidation...")

        url = f"{self.base_url}/images/{self.image_ids[0]}"
        resp = self.client.get(url, params=self.owner)
        if resp.status_code != 200 or resp.content != SAMPLE_PNG:
            log_fail(f"Image fetch failed: {resp.status_code}")
            return False

        self.image_etag = resp.headers.get("etag")
        resp = self.client.get(url, params=self.owner, headers={"If-None-Match": self.image_etag})
        if resp.status_code != 304:
            log_fail(f"Expected 304, got {resp.status_code}")
            return False

        log_success(f"Revalidated with {self.image_etag}")
        return True

    def step_delete_image(self) -> bool:
        log_info("Deleting first image...")

        deleted = self.image_ids.pop(0)
        resp = self.client.delete(
            f"{self.base_url}/images/{deleted}", params=self.owner, headers=self.auth
        )
        if resp.status_code != 200:
            log_fail(f"Expected 200, got {resp.status_code}: {resp.text[:200]}")
            return False

        url_list = resp.json().get("imageUrlList", "")
        if f"/images/{deleted}?" in url_list:
            log_fail(f"Deleted image still in imageUrlList: {url_list}")
            return False

        log_success(f"Deleted image {deleted}, {len(self.image_ids)} remain")
        return True

    def step_hero_image(self) -> bool:
        log_info("Uploading hero image...")

        files = {"file": ("hero.png", SAMPLE_PNG, "image/png")}
        resp = self.client.post(f"{self.base_url}/hero-image", files=files, headers=self.auth)
        if resp.status_code != 200:
            log_fail(f"Hero upload failed: {resp.status_code}: {resp.text[:200]}")
            return False

        resp = self.client.get(f"{self.base_url}/hero-image")
        if resp.status_code != 200 or resp.content != SAMPLE_PNG:
            log_fail(f"Hero fetch failed: {resp.status_code}")
            return False

        log_success("Hero image round-tripped")
        return True


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main() -> int:
    runner = DemoRunner(API_URL)
    success = runner.run()
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
