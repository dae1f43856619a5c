"""
API contract tests

Error responses follow {success, error, message, code}; domain errors
map to their HTTP status; authority checks sit in front of every write.
"""
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from playfield.database import get_db
from playfield.errors import ErrorCode
from playfield.main import app
from playfield.rbac import create_access_token
from playfield.tests.factories import PASSWORD, make_user


@pytest.fixture
async def client(db):
    async def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}


def _future(days: int = 1) -> str:
    return (datetime.utcnow() + timedelta(days=days)).isoformat()


async def _scheduled_match(client, world) -> dict:
    """Home schedules, away confirms, home wins the toss and starts."""
    response = await client.post("/api/matches", headers=auth(world.home_captain), json={
        "sport_id": world.sport.id,
        "team1_id": world.home.id,
        "team2_id": world.away.id,
        "scheduled_at": _future(),
        "overs_per_innings": 2,
    })
    assert response.status_code == 201
    match = response.json()
    assert match["status"] == "pending"
    assert [t["side"] for t in match["teams"]] == [1, 2]

    response = await client.post(f"/api/matches/{match['id']}/confirm", headers=auth(world.away_captain))
    assert response.json()["status"] == "upcoming"

    response = await client.post(
        f"/api/matches/{match['id']}/toss",
        headers=auth(world.home_captain),
        json={"winner_team_id": world.home.id, "decision": "bat"},
    )
    assert response.json()["status"] == "toss_done"

    response = await client.post(f"/api/matches/{match['id']}/start", headers=auth(world.home_captain))
    assert response.json()["status"] == "live"
    return response.json()


# =============================================================================
# Error format
# =============================================================================

class TestErrorResponseFormat:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/matches")
        assert response.status_code == 401
        data = response.json()
        assert data["success"] is False
        assert data["code"] == ErrorCode.AUTH_REQUIRED

    @pytest.mark.asyncio
    async def test_not_found(self, client, world):
        response = await client.get("/api/matches/9999", headers=auth(world.admin))
        assert response.status_code == 404
        assert response.json()["code"] == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_request_validation(self, client, world):
        response = await client.post("/api/matches", headers=auth(world.home_captain), json={"sport_id": "x"})
        assert response.status_code == 422
        assert response.json()["success"] is False


class TestAuth:

    @pytest.mark.asyncio
    async def test_login_and_me(self, client, world):
        response = await client.post("/api/auth/login", json={
            "email": world.home_captain.email, "password": PASSWORD,
        })
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.json()["id"] == world.home_captain.id

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client, world):
        response = await client.post("/api/auth/login", json={
            "email": world.home_captain.email, "password": "wrong",
        })
        assert response.status_code == 401
        assert response.json()["code"] == ErrorCode.AUTH_INVALID


# =============================================================================
# Scoring flow
# =============================================================================

class TestScoringFlow:

    @pytest.mark.asyncio
    async def test_ball_by_ball_to_career(self, client, world):
        match = await _scheduled_match(client, world)
        # rejected writes roll back the shared session, so read ids up front
        headers = auth(world.home_captain)
        home_id, opener_id = world.home.id, world.home_players[0].id
        batters = {"striker_id": opener_id, "non_striker_id": world.home_players[1].id}
        bowler = {"bowler_id": world.away_players[0].id}

        response = await client.post(
            f"/api/matches/{match['id']}/innings", headers=headers, json={"batting_team_id": home_id}
        )
        assert response.status_code == 201
        inning = response.json()
        assert inning["max_overs"] == 2

        for runs in (1, 4):
            response = await client.post(f"/api/innings/{inning['id']}/deliveries", headers=headers, json={
                "runs_scored": runs, "is_four": runs == 4, **bowler, **batters,
            })
            assert response.status_code == 201
        assert response.json()["inning"]["score"] == 5
        assert response.json()["delivery"]["sequence_number"] == 2

        response = await client.post(f"/api/innings/{inning['id']}/deliveries", headers=headers, json={
            "is_wicket": True, **bowler, **batters,
        })
        assert response.status_code == 400
        assert response.json()["code"] == ErrorCode.VALIDATION_ERROR

        response = await client.post(f"/api/innings/{inning['id']}/deliveries", headers=headers, json={
            "sequence_number": 7, **bowler, **batters,
        })
        assert response.status_code == 409
        assert response.json()["code"] == ErrorCode.OUT_OF_ORDER

        response = await client.post(f"/api/innings/{inning['id']}/deliveries", headers=headers, json={
            "is_wicket": True, "dismissal_type": "bowled", **bowler, **batters,
        })
        assert response.json()["inning"]["wickets"] == 1

        response = await client.get(f"/api/innings/{inning['id']}/scorecard", headers=headers)
        card = response.json()
        assert card["batting"][0]["runs"] == 5
        assert card["batting"][0]["out"] is True
        assert card["bowling"][0]["overs"] == "0.3"
        assert card["fall_of_wickets"][0]["score_at_wicket"] == 5

        response = await client.post(
            f"/api/matches/{match['id']}/end", headers=headers, json={"winning_team_id": home_id}
        )
        assert response.json()["status"] == "completed"

        response = await client.get(f"/api/players/{opener_id}/career", headers=headers)
        assert response.status_code == 200
        assert response.json()["runs_scored"] == 5

    @pytest.mark.asyncio
    async def test_outsider_cannot_run_match(self, client, world, db):
        match = await _scheduled_match(client, world)
        outsider = await make_user(db, "outsider")
        await db.commit()

        response = await client.post(f"/api/matches/{match['id']}/cancel", headers=auth(outsider), json={})
        assert response.status_code == 403
        assert response.json()["code"] == ErrorCode.FORBIDDEN

    @pytest.mark.asyncio
    async def test_override_requires_admin(self, client, world):
        match = await _scheduled_match(client, world)

        response = await client.post(
            f"/api/matches/{match['id']}/override",
            headers=auth(world.home_captain),
            json={"status": "abandoned"},
        )
        assert response.status_code == 403

        response = await client.post(
            f"/api/matches/{match['id']}/override",
            headers=auth(world.admin),
            json={"status": "abandoned", "reason": "rain"},
        )
        assert response.json()["status"] == "abandoned"

    @pytest.mark.asyncio
    async def test_details_editable_until_live(self, client, world):
        home = auth(world.home_captain)
        response = await client.post("/api/matches", headers=home, json={
            "sport_id": world.sport_id,
            "team1_id": world.home_id,
            "team2_id": world.away_id,
            "scheduled_at": _future(),
        })
        pending_id = response.json()["id"]

        response = await client.put(f"/api/matches/{pending_id}", headers=home, json={"overs_per_innings": 5})
        assert response.status_code == 200
        assert response.json()["overs_per_innings"] == 5

        live = await _scheduled_match(client, world)
        response = await client.put(f"/api/matches/{live['id']}", headers=home, json={"overs_per_innings": 5})
        assert response.status_code == 409
        assert response.json()["details"]["current_state"] == "live"

    @pytest.mark.asyncio
    async def test_illegal_transition_is_conflict(self, client, world):
        match = await _scheduled_match(client, world)

        response = await client.post(f"/api/matches/{match['id']}/start", headers=auth(world.home_captain))
        assert response.status_code == 409
        assert response.json()["code"] == ErrorCode.STATE_TRANSITION_INVALID
        assert response.json()["details"]["current_state"] == "live"


# =============================================================================
# Challenges + tournaments
# =============================================================================

class TestChallengeRoutes:

    @pytest.mark.asyncio
    async def test_accept_returns_scheduled_match(self, client, world):
        response = await client.post("/api/challenges", headers=auth(world.home_captain), json={
            "challenge_type": "open_team",
            "sender_team_id": world.home.id,
            "sport_id": world.sport.id,
            "proposed_at": _future(2),
        })
        assert response.status_code == 201
        challenge = response.json()
        assert challenge["status"] == "open"

        response = await client.post(
            f"/api/challenges/{challenge['id']}/accept",
            headers=auth(world.away_captain),
            json={"team_id": world.away.id},
        )
        assert response.status_code == 200
        match = response.json()
        assert match["status"] == "upcoming"
        assert {t["team_id"] for t in match["teams"]} == {world.home.id, world.away.id}

    @pytest.mark.asyncio
    async def test_only_sender_edits_terms(self, client, world):
        home, away = auth(world.home_captain), auth(world.away_captain)
        home_id, away_id = world.home_id, world.away_id
        response = await client.post("/api/challenges", headers=home, json={
            "challenge_type": "direct_team",
            "sender_team_id": home_id,
            "receiver_team_id": away_id,
            "sport_id": world.sport_id,
            "proposed_at": _future(2),
        })
        challenge_id = response.json()["id"]

        response = await client.put(
            f"/api/challenges/{challenge_id}", headers=home, json={"team_id": home_id, "title": "Derby"}
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Derby"

        response = await client.put(
            f"/api/challenges/{challenge_id}", headers=away, json={"team_id": away_id, "title": "Ours"}
        )
        assert response.status_code == 403
        assert response.json()["code"] == ErrorCode.FORBIDDEN

    @pytest.mark.asyncio
    async def test_cannot_send_for_unmanaged_team(self, client, world):
        response = await client.post("/api/challenges", headers=auth(world.home_players[0]), json={
            "challenge_type": "open_team",
            "sender_team_id": world.home.id,
            "sport_id": world.sport.id,
            "proposed_at": _future(2),
        })
        assert response.status_code == 403


class TestTournamentRoutes:

    @pytest.mark.asyncio
    async def test_full_tournament_is_conflict(self, client, world):
        admin = auth(world.admin)
        response = await client.post("/api/tournaments", headers=admin, json={
            "name": "Weekend Cup", "sport_id": world.sport.id, "max_teams": 1,
        })
        assert response.status_code == 201
        tournament = response.json()

        response = await client.post(f"/api/tournaments/{tournament['id']}/registration/open", headers=admin)
        assert response.json()["status"] == "registration_open"

        response = await client.post(
            f"/api/tournaments/{tournament['id']}/registrations",
            headers=auth(world.home_captain),
            json={"team_id": world.home.id},
        )
        assert response.status_code == 201

        response = await client.post(
            f"/api/tournaments/{tournament['id']}/registrations",
            headers=auth(world.away_captain),
            json={"team_id": world.away.id},
        )
        assert response.status_code == 409
        assert response.json()["code"] == ErrorCode.TOURNAMENT_FULL

        response = await client.get(f"/api/tournaments/{tournament['id']}", headers=admin)
        assert response.json()["current_teams"] == 1

    @pytest.mark.asyncio
    async def test_edit_then_delete(self, client, world):
        admin, outsider = auth(world.admin), auth(world.home_captain)
        response = await client.post("/api/tournaments", headers=admin, json={
            "name": "Weekend Cup", "sport_id": world.sport_id, "max_teams": 4,
        })
        tournament_id = response.json()["id"]

        response = await client.put(f"/api/tournaments/{tournament_id}", headers=admin, json={"max_teams": 6})
        assert response.status_code == 200
        assert response.json()["max_teams"] == 6

        response = await client.delete(f"/api/tournaments/{tournament_id}", headers=outsider)
        assert response.status_code == 403

        response = await client.delete(f"/api/tournaments/{tournament_id}", headers=admin)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        response = await client.get(f"/api/tournaments/{tournament_id}", headers=admin)
        assert response.status_code == 404
