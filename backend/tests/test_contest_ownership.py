"""Tests for the ownership check and conflict resolution."""
import asyncio

from app.services.contest_ownership import (
    UNAVAILABLE_REASON,
    OwnershipContested,
    OwnershipFailed,
    OwnershipPending,
    OwnershipVerified,
    check_video_ownership,
    resolve_ownership_conflicts,
)
from app.services.video_fingerprint import fingerprint
from tests.conftest import ALICE_URL


def check(store, url, user_id, platform="tiktok", **kwargs):
    return asyncio.run(check_video_ownership(store, url, user_id, platform, **kwargs))


def resolve(store, url, account_id, user_id):
    return asyncio.run(resolve_ownership_conflicts(store, url, account_id, user_id))


class TestCheckVideoOwnership:
    """Priority order of the ownership check."""

    def test_default_is_pending(self, store):
        result = check(store, ALICE_URL, "user-a")
        assert isinstance(result, OwnershipPending)
        assert result.status == "pending"

    def test_verified_asset_of_same_user(self, store):
        account = store.add_account("user-a", username="alice")
        store.add_asset("user-a", ALICE_URL, ownership_status="verified", owner_social_account_id=account.id)

        result = check(store, ALICE_URL, "user-a")
        assert result == OwnershipVerified(
            social_account_id=account.id, reason="Ownership verified via connected account @alice"
        )

    def test_verified_asset_of_other_user_fails_without_writes(self, store):
        account = store.add_account("user-a", username="alice")
        store.add_asset("user-a", ALICE_URL, ownership_status="verified", owner_social_account_id=account.id)
        store.add_submission("user-b", ALICE_URL)

        result = check(store, ALICE_URL, "user-b")
        assert isinstance(result, OwnershipFailed)
        assert result.claimed_by == "user-a"
        assert result.claimed_by_username == "alice"
        assert "@alice" in result.reason
        assert not [c for c in store.calls if c.startswith(("mark_", "claim_", "record_", "link_"))]

    def test_claimed_claim_row_counts_as_verified_owner(self, store):
        account = store.add_account("user-a", username="alice")
        asyncio.run(store.claim_video(fingerprint(ALICE_URL), "tiktok", "user-a", account.id))

        assert check(store, ALICE_URL, "user-a").status == "verified"
        failed = check(store, ALICE_URL, "user-b")
        assert failed.status == "failed"
        assert failed.claimed_by == "user-a"

    def test_matching_verified_account(self, store):
        account = store.add_account("user-a", username="@Alice")
        result = check(store, "https://www.tiktok.com/@ALICE/video/123", "user-a")
        assert isinstance(result, OwnershipVerified)
        assert result.social_account_id == account.id

    def test_matching_by_profile_url(self, store):
        account = store.add_account(
            "user-a", platform="youtube", username="someone-else", profile_url="https://www.youtube.com/@chan"
        )
        result = check(store, "https://www.youtube.com/@chan/shorts/abc", "user-a", platform="youtube")
        assert result == OwnershipVerified(
            social_account_id=account.id, reason="Ownership verified via connected account @someone-else"
        )

    def test_unverified_account_does_not_match(self, store):
        store.add_account("user-a", username="alice", verified=False)
        assert check(store, ALICE_URL, "user-a").status == "pending"

    def test_account_on_other_platform_does_not_match(self, store):
        store.add_account("user-a", platform="instagram", username="alice")
        assert check(store, ALICE_URL, "user-a").status == "pending"

    def test_verified_user_short_circuits_before_pending_scan(self, store):
        store.add_account("user-a", username="alice")
        store.add_submission("user-b", ALICE_URL)

        assert check(store, ALICE_URL, "user-a").status == "verified"
        assert "list_open_submissions" not in store.calls

    def test_other_users_open_submission_is_contested(self, store):
        store.add_submission("user-a", ALICE_URL)
        result = check(store, ALICE_URL, "user-b")
        assert isinstance(result, OwnershipContested)

    def test_own_open_submission_stays_pending(self, store):
        store.add_submission("user-a", ALICE_URL, mp4_ownership_status="contested")
        assert check(store, ALICE_URL, "user-a").status == "pending"

    def test_resolved_submissions_are_ignored(self, store):
        store.add_submission("user-a", ALICE_URL, mp4_ownership_status="failed")
        assert check(store, ALICE_URL, "user-b").status == "pending"

    def test_pending_scan_respects_limit(self, store):
        for _ in range(3):
            store.add_submission("user-b", ALICE_URL)
        store.add_submission("user-c", ALICE_URL)

        assert check(store, ALICE_URL, "user-b", pending_scan_limit=3).status == "pending"
        assert check(store, ALICE_URL, "user-b", pending_scan_limit=None).status == "contested"

    def test_claim_lookup_error_degrades_to_pending(self, store):
        store.fail_on.add("find_verified_asset")
        result = check(store, ALICE_URL, "user-a")
        assert result == OwnershipPending(reason=UNAVAILABLE_REASON)

    def test_later_lookup_errors_fall_through(self, store):
        store.add_submission("user-b", ALICE_URL)
        store.fail_on.update({"list_verified_accounts", "list_open_submissions"})
        assert check(store, ALICE_URL, "user-a").status == "pending"

    def test_concurrent_first_submissions_both_pending(self, store):
        """Two checks before anything is persisted both see an unclaimed video."""

        async def both():
            return await asyncio.gather(
                check_video_ownership(store, ALICE_URL, "user-a", "tiktok"),
                check_video_ownership(store, ALICE_URL, "user-b", "tiktok"),
            )

        first, second = asyncio.run(both())
        assert first.status == second.status == "pending"

    def test_as_dict_only_carries_variant_fields(self):
        assert OwnershipPending(reason="x").as_dict() == {"status": "pending", "reason": "x"}
        assert set(OwnershipVerified(social_account_id=1, reason="x").as_dict()) == {
            "status", "social_account_id", "reason",
        }


class TestResolveOwnershipConflicts:
    def _scenario(self, store):
        account_a = store.add_account("user-a", username="alice", verified=False)
        sub_a = store.add_submission("user-a", ALICE_URL)
        sub_b = store.add_submission("user-b", ALICE_URL, mp4_ownership_status="contested")
        asset_a = store.add_asset("user-a", ALICE_URL, contest_submission_id=sub_a.id)
        asset_b = store.add_asset("user-b", ALICE_URL, ownership_status="contested", contest_submission_id=sub_b.id)
        return account_a, sub_a, sub_b, asset_a, asset_b

    def test_alice_scenario(self, store):
        """Two users submit, then user A verifies @alice: A wins, B is disqualified."""
        account_a, sub_a, sub_b, asset_a, asset_b = self._scenario(store)
        assert check(store, ALICE_URL, "user-a").status in ("pending", "contested")

        store.verify(account_a.id)
        result = resolve(store, ALICE_URL, account_a.id, "user-a")

        a = store.submissions[sub_a.id]
        b = store.submissions[sub_b.id]
        assert (a.mp4_ownership_status, a.verification_status, a.is_disqualified) == ("verified", "verified", False)
        assert a.mp4_owner_social_account_id == account_a.id
        assert a.ownership_resolved_at is not None
        assert (b.mp4_ownership_status, b.verification_status, b.is_disqualified) == ("failed", "failed", True)
        assert b.ownership_resolved_at is not None
        assert "@alice" in b.mp4_ownership_reason

        assert store.assets[asset_a.id].ownership_status == "verified"
        assert store.assets[asset_a.id].owner_social_account_id == account_a.id
        assert store.assets[asset_b.id].ownership_status == "failed"

        assert result.winning_submission_ids == [sub_a.id]
        assert result.losing_submission_ids == [sub_b.id]
        assert result.claimed is True
        assert store.claims[fingerprint(ALICE_URL)].current_owner_user_id == "user-a"

        # afterwards B's resubmission is rejected
        assert check(store, ALICE_URL, "user-b").status == "failed"

    def test_idempotent(self, store):
        account_a, *_ = self._scenario(store)
        store.verify(account_a.id)

        resolve(store, ALICE_URL, account_a.id, "user-a")
        snapshot = {
            "subs": {k: (v.mp4_ownership_status, v.is_disqualified) for k, v in store.submissions.items()},
            "assets": {k: v.ownership_status for k, v in store.assets.items()},
        }
        second = resolve(store, ALICE_URL, account_a.id, "user-a")

        assert {k: (v.mp4_ownership_status, v.is_disqualified) for k, v in store.submissions.items()} == snapshot["subs"]
        assert {k: v.ownership_status for k, v in store.assets.items()} == snapshot["assets"]
        assert second.winning_submission_ids == []
        assert second.losing_submission_ids == []

    def test_unknown_account_changes_nothing(self, store):
        sub = store.add_submission("user-b", ALICE_URL)
        result = resolve(store, ALICE_URL, 999, "user-a")
        assert store.submissions[sub.id].mp4_ownership_status == "pending"
        assert result.losing_submission_ids == []

    def test_row_failure_does_not_stop_the_rest(self, store):
        account_a, sub_a, sub_b, asset_a, asset_b = self._scenario(store)
        sub_c = store.add_submission("user-c", ALICE_URL)
        store.verify(account_a.id)
        store.fail_rows.add(sub_b.id)

        result = resolve(store, ALICE_URL, account_a.id, "user-a")

        assert result.errors == 1
        assert store.submissions[sub_b.id].mp4_ownership_status == "contested"
        assert store.submissions[sub_c.id].is_disqualified is True
        assert store.submissions[sub_a.id].mp4_ownership_status == "verified"
        assert store.assets[asset_b.id].ownership_status == "failed"

    def test_submission_query_failure_still_settles_assets(self, store):
        account_a, sub_a, _, asset_a, asset_b = self._scenario(store)
        store.verify(account_a.id)
        store.fail_on.add("list_open_submissions")

        result = resolve(store, ALICE_URL, account_a.id, "user-a")

        assert result.errors == 1
        assert store.submissions[sub_a.id].mp4_ownership_status == "pending"
        assert store.assets[asset_a.id].ownership_status == "verified"
        assert store.assets[asset_b.id].ownership_status == "failed"

    def test_existing_claim_of_other_user_keeps_single_owner(self, store):
        """The claim row is held by user C: nobody in this run may win."""
        account_a, sub_a, sub_b, *_ = self._scenario(store)
        account_c = store.add_account("user-c", username="alice_real")
        asyncio.run(store.claim_video(fingerprint(ALICE_URL), "tiktok", "user-c", account_c.id))
        store.verify(account_a.id)

        result = resolve(store, ALICE_URL, account_a.id, "user-a")

        assert result.claimed is False
        assert result.winning_submission_ids == []
        assert store.submissions[sub_a.id].mp4_ownership_status == "failed"
        assert store.submissions[sub_b.id].mp4_ownership_status == "failed"
        assert "@alice_real" in store.submissions[sub_a.id].mp4_ownership_reason
        assert store.claims[fingerprint(ALICE_URL)].current_owner_user_id == "user-c"

    def test_claim_error_leaves_rows_open(self, store):
        """When taking the claim fails nothing is settled, so a later run can finish the job."""
        account_a, sub_a, sub_b, asset_a, asset_b = self._scenario(store)
        account_c = store.add_account("user-c", username="alice_real")
        asyncio.run(store.claim_video(fingerprint(ALICE_URL), "tiktok", "user-c", account_c.id))
        store.verify(account_a.id)
        store.fail_on.add("claim_video")

        result = resolve(store, ALICE_URL, account_a.id, "user-a")

        assert result.errors == 1
        assert result.claimed is False
        assert result.winning_submission_ids == [] and result.losing_submission_ids == []
        assert store.submissions[sub_a.id].mp4_ownership_status == "pending"
        assert store.submissions[sub_b.id].mp4_ownership_status == "contested"
        assert store.assets[asset_a.id].ownership_status == "pending"
        assert store.claims[fingerprint(ALICE_URL)].current_owner_user_id == "user-c"

        store.fail_on.clear()
        retry = resolve(store, ALICE_URL, account_a.id, "user-a")
        assert retry.claimed is False
        assert store.submissions[sub_a.id].mp4_ownership_status == "failed"

    def test_losers_name_the_claim_holder(self, store):
        """The verified user has nothing open on the video; the reason names who really holds it."""
        account_a = store.add_account("user-a", username="alice")
        account_c = store.add_account("user-c", username="alice_real")
        asyncio.run(store.claim_video(fingerprint(ALICE_URL), "tiktok", "user-c", account_c.id))
        sub_b = store.add_submission("user-b", ALICE_URL, mp4_ownership_status="contested")
        store.calls.clear()

        result = resolve(store, ALICE_URL, account_a.id, "user-a")

        assert result.losing_submission_ids == [sub_b.id]
        reason = store.submissions[sub_b.id].mp4_ownership_reason
        assert "@alice_real" in reason
        assert "@alice." not in reason
        assert "claim_video" not in store.calls

    def test_losers_name_verified_account_when_no_claim_exists(self, store):
        account_a = store.add_account("user-a", username="alice")
        sub_b = store.add_submission("user-b", ALICE_URL)

        resolve(store, ALICE_URL, account_a.id, "user-a")

        assert store.submissions[sub_b.id].mp4_ownership_reason.startswith("Ownership claimed by @alice.")
