from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "bootstrap_member.py"
TENANT_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"


def _run_script(*args: str) -> str:
    completed = subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


def test_bootstrap_script_emits_sql_for_user_id_target() -> None:
    user_id = "00000000-0000-0000-0000-000000000123"
    output = _run_script("--user-id", user_id, "--role", "moderator", "--tenant-id", TENANT_ID)

    assert "update auth.users" in output
    assert f"where id = '{user_id}'::uuid;" in output
    assert f"jsonb_build_object('role', 'moderator', 'tenant_id', '{TENANT_ID}')" in output
    assert "insert into members (id, tenant_id, name, email, role)" in output
    assert "on conflict (id) do update" in output


def test_bootstrap_script_emits_sql_for_email_target() -> None:
    output = _run_script("--email", "o'brien@example.org", "--tenant-id", TENANT_ID)

    assert "where email = 'o''brien@example.org';" in output
    assert "jsonb_build_object('role', 'member'," in output


def test_bootstrap_script_requires_a_tenant() -> None:
    completed = subprocess.run(
        [sys.executable, str(SCRIPT_PATH), "--email", "someone@example.org"],
        capture_output=True,
        text=True,
    )
    assert completed.returncode != 0
    assert "--tenant-id" in completed.stderr
