#!/usr/bin/env python3
"""Emit deterministic SQL that assigns a Supabase user to an organization with a role."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, role: str, tenant_id: str, user_id: str | None, email: str | None) -> str:
    role_value = _quote_sql(role)
    tenant_value = _quote_sql(tenant_id)

    if user_id:
        target_where = f"id = {_quote_sql(user_id)}::uuid"
    else:
        assert email is not None
        target_where = f"email = {_quote_sql(email)}"

    return f"""-- Event board member bootstrap SQL
-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).

update auth.users
set raw_app_meta_data = coalesce(raw_app_meta_data, '{{}}'::jsonb)
  || jsonb_build_object('role', {role_value}, 'tenant_id', {tenant_value})
where {target_where};

insert into members (id, tenant_id, name, email, role)
select id, {tenant_value}::uuid, coalesce(raw_user_meta_data->>'name', email), email, {role_value}
from auth.users
where {target_where}
on conflict (id) do update
set tenant_id = excluded.tenant_id,
    name = excluded.name,
    email = excluded.email,
    role = excluded.role;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to bootstrap an event board member.")
    parser.add_argument(
        "--role",
        choices=["member", "moderator", "admin"],
        default="member",
        help="Role to assign in auth.users.raw_app_meta_data.role",
    )
    parser.add_argument("--tenant-id", required=True, help="Organization id (UUID) the member belongs to")
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    args = parser.parse_args()

    print(
        render_sql(
            role=args.role,
            tenant_id=args.tenant_id,
            user_id=args.user_id,
            email=args.email,
        )
    )


if __name__ == "__main__":
    main()
