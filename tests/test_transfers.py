"""
Tests for transfers: internal, external (Zelle-style), rules and history.

These tests verify:
  - Internal transfers move money between a customer's own accounts
  - External transfers reach other customers by email, phone or account number
  - Recipients outside the bank only see the sender's debit (black hole)
  - Both legs share one transfer_group_id
  - Idempotent retries post once
  - Recurring rules are scheduled, listed, run and cancelled
"""

import uuid
from datetime import datetime, timedelta, timezone


async def _account(client, deposit=None) -> dict:
    response = await client.post("/accounts", json={})
    account = response.json()
    if deposit is not None:
        await client.post(
            "/transactions",
            json={"transaction_type": "deposit", "account_id": account["id"], "amount": deposit},
        )
    return account


async def _balance(client, account_id) -> int:
    response = await client.get(f"/accounts/{account_id}/balance")
    return response.json()["balance_cents"]


def _future(days=7) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


class TestInternalTransfer:

    async def test_internal_transfer(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)

        response = await authenticated_client.post(
            "/transfers/internal",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "40.00",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["amount_cents"] == 4000
        assert data["black_hole"] is False
        assert data["debit_transaction"]["amount_cents"] == -4000
        assert data["credit_transaction"]["amount_cents"] == 4000
        assert data["debit_transaction"]["transfer_group_id"] == data["transfer_group_id"]
        assert data["credit_transaction"]["transfer_group_id"] == data["transfer_group_id"]
        assert data["debit_transaction"]["transfer_rule_id"] == data["transfer_rule_id"]

        assert await _balance(authenticated_client, source["id"]) == 6000
        assert await _balance(authenticated_client, destination["id"]) == 4000

    async def test_insufficient_funds_moves_nothing(self, authenticated_client):
        source = await _account(authenticated_client, "10.00")
        destination = await _account(authenticated_client)

        response = await authenticated_client.post(
            "/transfers/internal",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "40.00",
            },
        )
        assert response.status_code == 409
        assert response.json()["reason"] == "insufficient_funds"

        assert await _balance(authenticated_client, source["id"]) == 1000
        assert await _balance(authenticated_client, destination["id"]) == 0

    async def test_same_account_rejected(self, authenticated_client):
        source = await _account(authenticated_client, "10.00")

        response = await authenticated_client.post(
            "/transfers/internal",
            json={
                "source_account_id": source["id"],
                "destination_account_id": source["id"],
                "amount": "1.00",
            },
        )
        assert response.status_code == 422

    async def test_cannot_use_internal_for_someone_elses_account(
        self, authenticated_client, second_authenticated_client
    ):
        source = await _account(authenticated_client, "10.00")
        other = await _account(second_authenticated_client)

        response = await authenticated_client.post(
            "/transfers/internal",
            json={
                "source_account_id": source["id"],
                "destination_account_id": other["id"],
                "amount": "1.00",
            },
        )
        assert response.status_code == 403
        assert await _balance(authenticated_client, source["id"]) == 1000

    async def test_retry_with_same_key_posts_once(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)
        body = {
            "source_account_id": source["id"],
            "destination_account_id": destination["id"],
            "amount": "25.00",
        }

        first = await authenticated_client.post(
            "/transfers/internal", json=body, headers={"Idempotency-Key": "move-1"}
        )
        second = await authenticated_client.post(
            "/transfers/internal", json=body, headers={"Idempotency-Key": "move-1"}
        )

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["duplicate"] is True
        assert second.json()["debit_transaction"]["id"] == first.json()["debit_transaction"]["id"]
        assert second.json()["credit_transaction"]["id"] == first.json()["credit_transaction"]["id"]

        assert await _balance(authenticated_client, source["id"]) == 7500
        assert await _balance(authenticated_client, destination["id"]) == 2500


class TestExternalTransfer:

    async def test_by_email(self, authenticated_client, second_authenticated_client):
        source = await _account(authenticated_client, "100.00")
        recipient = await _account(second_authenticated_client)

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_email": "seconduser@example.com",
                "amount": "15.00",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["black_hole"] is False
        assert data["credit_transaction"]["account_id"] == recipient["id"]

        assert await _balance(authenticated_client, source["id"]) == 8500
        assert await _balance(second_authenticated_client, recipient["id"]) == 1500

    async def test_by_phone(self, authenticated_client, second_authenticated_client):
        source = await _account(authenticated_client, "100.00")
        recipient = await _account(second_authenticated_client)

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_phone": "+15550000002",
                "amount": "5.00",
            },
        )
        assert response.status_code == 201
        assert await _balance(second_authenticated_client, recipient["id"]) == 500

    async def test_by_account_number(self, authenticated_client, second_authenticated_client):
        source = await _account(authenticated_client, "100.00")
        recipient = await _account(second_authenticated_client)

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_account_number": recipient["account_number"],
                "recipient_routing_number": recipient["routing_number"],
                "amount": "7.00",
            },
        )
        assert response.status_code == 201
        assert await _balance(second_authenticated_client, recipient["id"]) == 700

    async def test_unknown_recipient_is_a_black_hole(self, authenticated_client):
        """The sender is debited; nothing is credited anywhere on our ledger."""
        source = await _account(authenticated_client, "100.00")

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_account_number": "123456789",
                "recipient_routing_number": "021000021",
                "recipient_nickname": "Landlord",
                "amount": "30.00",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["black_hole"] is True
        assert data["credit_transaction"] is None
        debit = data["debit_transaction"]
        assert debit["amount_cents"] == -3000
        assert debit["external_nickname"] == "Landlord"
        assert debit["external_account_number"] == "123456789"

        assert await _balance(authenticated_client, source["id"]) == 7000

    async def test_sending_to_yourself_is_rejected(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        await _account(authenticated_client)

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_email": "testuser@example.com",
                "amount": "1.00",
            },
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_transfer"

    async def test_exactly_one_recipient_required(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_email": "seconduser@example.com",
                "recipient_phone": "+15550000002",
                "amount": "1.00",
            },
        )
        assert response.status_code == 422

    async def test_inactive_recipient_account_is_skipped(
        self, authenticated_client, second_authenticated_client
    ):
        """Email transfers credit the recipient's first ACTIVE account."""
        source = await _account(authenticated_client, "100.00")
        closed = await _account(second_authenticated_client)
        open_account = await _account(second_authenticated_client)
        await second_authenticated_client.post(f"/accounts/{closed['id']}/deactivate")

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_email": "seconduser@example.com",
                "amount": "2.00",
            },
        )
        assert response.status_code == 201
        assert response.json()["credit_transaction"]["account_id"] == open_account["id"]

    async def test_deactivated_account_by_number_is_denied(
        self, authenticated_client, second_authenticated_client
    ):
        """Our own closed account is never treated as an outside recipient."""
        source = await _account(authenticated_client, "100.00")
        closed = await _account(second_authenticated_client)
        await second_authenticated_client.post(f"/accounts/{closed['id']}/deactivate")

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_account_number": closed["account_number"],
                "recipient_routing_number": closed["routing_number"],
                "amount": "10.00",
            },
        )
        assert response.status_code == 403
        body = response.json()
        assert body["error_type"] == "transaction_denied"
        assert body["reason"] == "destination_inactive"

        assert await _balance(authenticated_client, source["id"]) == 10000
        denied = await authenticated_client.get(
            "/transactions", params={"account_id": source["id"], "status": "denied"}
        )
        assert [row["id"] for row in denied.json()] == [body["transaction_id"]]

    async def test_recipient_email_is_case_insensitive(
        self, authenticated_client, second_authenticated_client
    ):
        source = await _account(authenticated_client, "100.00")
        recipient = await _account(second_authenticated_client)

        response = await authenticated_client.post(
            "/transfers/external",
            json={
                "source_account_id": source["id"],
                "recipient_email": "SecondUser@Example.com",
                "amount": "12.00",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["black_hole"] is False
        assert data["credit_transaction"]["account_id"] == recipient["id"]
        assert await _balance(second_authenticated_client, recipient["id"]) == 1200


class TestRecipientLookup:

    async def test_lookup_by_email(self, authenticated_client, second_authenticated_client):
        recipient = await _account(second_authenticated_client)

        response = await authenticated_client.get(
            "/transfers/lookup", params={"email": "seconduser@example.com"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["found"] is True
        assert data["first_name"] == "Second"
        assert data["accounts"][0]["account_number_last4"] == recipient["account_number"][-4:]
        assert "balance_cents" not in data["accounts"][0]

    async def test_lookup_unknown_phone(self, authenticated_client):
        response = await authenticated_client.get(
            "/transfers/lookup", params={"phone": "+15559999999"}
        )
        assert response.status_code == 200
        assert response.json() == {
            "found": False,
            "first_name": None,
            "last_name": None,
            "accounts": [],
        }


class TestTransferRules:

    async def test_create_rule_stamps_next_run(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)
        start = _future()

        response = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "10.00",
                "frequency": "Monthly",
                "start_time": start,
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["transfer_kind"] == "recurring"
        assert data["frequency"] == "monthly"
        assert data["amount_cents"] == 1000
        assert data["is_active"] is True
        # A future start is itself the first run
        assert data["next_run_at"][:19] == start[:19]

    async def test_cron_is_not_a_transfer_frequency(self, authenticated_client):
        source = await _account(authenticated_client)
        destination = await _account(authenticated_client)

        response = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "10.00",
                "frequency": "0 9 1 * *",
                "start_time": _future(),
            },
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "invalid_frequency"

    async def test_end_before_start_rejected(self, authenticated_client):
        source = await _account(authenticated_client)
        destination = await _account(authenticated_client)

        response = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "10.00",
                "frequency": "weekly",
                "start_time": _future(7),
                "end_time": _future(1),
            },
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_schedule"

    async def test_list_hides_one_off_rules_by_default(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)
        await authenticated_client.post(
            "/transfers/internal",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "1.00",
            },
        )
        await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "10.00",
                "frequency": "weekly",
                "start_time": _future(),
            },
        )

        recurring = await authenticated_client.get("/transfers/rules")
        everything = await authenticated_client.get("/transfers/rules", params={"include_one_off": True})

        assert [r["transfer_kind"] for r in recurring.json()] == ["recurring"]
        assert sorted(r["transfer_kind"] for r in everything.json()) == ["one_off", "recurring"]

    async def test_run_rule_through_transactions(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)
        rule = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "12.50",
                "frequency": "weekly",
                "start_time": _future(),
            },
        )
        rule_id = rule.json()["id"]

        response = await authenticated_client.post(
            "/transactions",
            json={"transaction_type": "internal_transfer", "rule_id": rule_id},
            headers={"Idempotency-Key": "run-2026-10-19"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["transaction"]["amount_cents"] == -1250
        assert data["transaction"]["transfer_rule_id"] == rule_id
        assert data["credit_transaction"]["account_id"] == destination["id"]

        replay = await authenticated_client.post(
            "/transactions",
            json={"transaction_type": "internal_transfer", "rule_id": rule_id},
            headers={"Idempotency-Key": "run-2026-10-19"},
        )
        assert replay.status_code == 200
        assert replay.json()["duplicate"] is True

        assert await _balance(authenticated_client, source["id"]) == 8750
        assert await _balance(authenticated_client, destination["id"]) == 1250

    async def test_rule_type_must_match_destination(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)
        rule = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "1.00",
                "frequency": "weekly",
                "start_time": _future(),
            },
        )

        response = await authenticated_client.post(
            "/transactions",
            json={"transaction_type": "external_transfer", "rule_id": rule.json()["id"]},
        )
        assert response.status_code == 400

    async def test_external_rule_run_is_a_black_hole(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        rule = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "external_routing_number": "021000021",
                "external_account_number": "5551234",
                "external_nickname": "Savings at another bank",
                "amount": "20.00",
                "frequency": "monthly",
                "start_time": _future(),
            },
        )
        assert rule.status_code == 201

        response = await authenticated_client.post(
            "/transactions",
            json={"transaction_type": "external_transfer", "rule_id": rule.json()["id"]},
        )
        assert response.status_code == 201
        assert response.json()["credit_transaction"] is None
        assert await _balance(authenticated_client, source["id"]) == 8000

    async def test_cancel_rule(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)
        rule = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "1.00",
                "frequency": "weekly",
                "start_time": _future(),
            },
        )
        rule_id = rule.json()["id"]

        response = await authenticated_client.delete(f"/transfers/rules/{rule_id}")
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert response.json()["next_run_at"] is None

        run = await authenticated_client.post(
            "/transactions",
            json={"transaction_type": "internal_transfer", "rule_id": rule_id},
        )
        assert run.status_code == 400

    async def test_other_users_rule_is_not_found(
        self, authenticated_client, second_authenticated_client
    ):
        source = await _account(authenticated_client)
        destination = await _account(authenticated_client)
        rule = await authenticated_client.post(
            "/transfers/rules",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "1.00",
                "frequency": "weekly",
                "start_time": _future(),
            },
        )

        response = await second_authenticated_client.delete(f"/transfers/rules/{rule.json()['id']}")
        assert response.status_code == 404

    async def test_unknown_rule(self, authenticated_client):
        response = await authenticated_client.delete(f"/transfers/rules/{uuid.uuid4()}")
        assert response.status_code == 404


class TestTransferHistory:

    async def test_history_lists_both_legs(self, authenticated_client):
        source = await _account(authenticated_client, "100.00")
        destination = await _account(authenticated_client)
        await authenticated_client.post(
            "/transfers/internal",
            json={
                "source_account_id": source["id"],
                "destination_account_id": destination["id"],
                "amount": "10.00",
            },
        )

        response = await authenticated_client.get("/transfers/history")
        assert response.status_code == 200
        amounts = sorted(t["amount_cents"] for t in response.json())
        assert amounts == [-1000, 1000]
        assert all(t["transaction_type"] == "internal_transfer" for t in response.json())
