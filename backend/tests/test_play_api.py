from conftest import ADMIN_EMAIL


def _register(client, email: str) -> dict[str, str]:
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "SuperSecret123"},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _correct_text(question) -> str:
    return next(choice.text for choice in question.choices if choice.correct)


def _index_of(question_read: dict, text: str) -> int:
    return next(choice["index"] for choice in question_read["choices"] if choice["text"] == text)


def _play_quiz(client, headers, catalog, chapter_id: str, *, miss: set[int] = frozenset()) -> dict:
    chapter = catalog.get(chapter_id)
    attempt = client.post(f"/api/v1/chapters/{chapter_id}/attempts", headers=headers)
    assert attempt.status_code == 201
    data = attempt.json()

    for number, question in enumerate(chapter.quiz):
        assert data["question"]["question"] == question.question
        correct_index = _index_of(data["question"], _correct_text(question))
        choice = correct_index if number not in miss else (correct_index + 1) % len(question.choices)
        answered = client.post(
            f"/api/v1/quiz-attempts/{data['id']}/answer",
            json={"choice_index": choice},
            headers=headers,
        )
        assert answered.status_code == 200
        assert answered.json()["phase"] == "showing_explanation"
        advanced = client.post(f"/api/v1/quiz-attempts/{data['id']}/advance", headers=headers)
        assert advanced.status_code == 200
        data = advanced.json()
    assert data["phase"] == "completed"
    return data


def test_catalog_shows_tier_locks(client):
    headers = _register(client, "catalog@example.com")
    response = client.get("/api/v1/chapters", headers=headers)
    assert response.status_code == 200
    data = response.json()

    tiers = {tier["id"]: tier for tier in data["tiers"]}
    assert tiers[1]["unlocked"] is True
    assert tiers[2]["unlocked"] is False
    assert tiers[2]["unlock_level"] == 5

    chapters = {chapter["id"]: chapter for chapter in data["chapters"]}
    assert chapters["life-basics"]["locked"] is False
    assert chapters["seg-funds-guarantees"]["locked"] is True
    assert chapters["life-taxation"]["has_boss"] is True
    assert chapters["life-taxation"]["boss_unlocked"] is False

    locked = client.post("/api/v1/chapters/seg-funds-guarantees/attempts", headers=headers)
    assert locked.status_code == 403
    missing = client.get("/api/v1/chapters/unknown", headers=headers)
    assert missing.status_code == 404


def test_chapters_require_authentication(client):
    assert client.get("/api/v1/chapters").status_code == 401


def test_perfect_quiz_completes_chapter_and_persists(client, catalog):
    headers = _register(client, "perfect@example.com")
    result = _play_quiz(client, headers, catalog, "life-basics")

    outcome = result["outcome"]
    assert outcome["passed"] is True
    assert outcome["final_score"] == 3
    assert outcome["xp_awarded"] == 150
    assert outcome["chapter_completed"] is True
    messages = [item["message"] for item in result["notifications"]]
    assert "+150 XP earned!" in messages
    assert "Chapter completed!" in messages

    flushed = client.post("/api/v1/progression/flush", headers=headers)
    assert flushed.status_code == 200
    assert flushed.json()["persistence_pending"] is False

    profile = client.get("/api/v1/profile/me", headers=headers).json()
    assert profile["xp"] == 150
    assert profile["chapters_completed"] == ["life-basics"]
    assert profile["badges"] == ["Life Apprentice"]


def test_failed_quiz_offers_retry_without_rewards(client, catalog):
    headers = _register(client, "retry@example.com")
    result = _play_quiz(client, headers, catalog, "life-basics", miss={1})

    assert result["outcome"]["passed"] is False
    assert result["outcome"]["final_score"] == 2
    assert result["can_retry"] is True

    progression = client.get("/api/v1/progression/me", headers=headers).json()
    assert progression["xp"] == 0
    assert progression["completed_chapters"] == []

    retry = client.post(f"/api/v1/quiz-attempts/{result['id']}/retry", headers=headers)
    assert retry.status_code == 201
    assert retry.json()["phase"] == "answering"
    assert retry.json()["id"] != result["id"]


def test_advance_before_answer_conflicts(client):
    headers = _register(client, "eager@example.com")
    attempt = client.post("/api/v1/chapters/life-basics/attempts", headers=headers).json()
    response = client.post(f"/api/v1/quiz-attempts/{attempt['id']}/advance", headers=headers)
    assert response.status_code == 409
    unknown = client.get("/api/v1/quiz-attempts/nope", headers=headers)
    assert unknown.status_code == 404


def test_boss_battle_after_perfect_quiz(client, catalog):
    headers = _register(client, "boss@example.com")

    early = client.post("/api/v1/chapters/life-taxation/boss-battles", headers=headers)
    assert early.status_code == 403
    no_boss = client.post("/api/v1/chapters/life-basics/boss-battles", headers=headers)
    assert no_boss.status_code == 404

    result = _play_quiz(client, headers, catalog, "life-taxation")
    assert result["outcome"]["boss_unlocked"] is True
    assert result["outcome"]["chapter_completed"] is False
    assert result["outcome"]["xp_awarded"] == 300

    battle = client.post("/api/v1/chapters/life-taxation/boss-battles", headers=headers)
    assert battle.status_code == 201
    data = battle.json()
    assert data["boss_name"] == "The Tax Collector"
    assert data["lives_remaining"] == 1

    boss = catalog.get("life-taxation").boss
    for question in boss.quiz:
        index = _index_of(data["question"], _correct_text(question))
        answered = client.post(
            f"/api/v1/boss-battles/{data['id']}/answer",
            json={"choice_index": index},
            headers=headers,
        )
        assert answered.status_code == 200
        data = client.get(f"/api/v1/boss-battles/{data['id']}", headers=headers).json()

    assert data["status"] == "won"
    assert data["boss_health"] == 0
    assert data["reward_granted"] is True

    progression = client.get("/api/v1/progression/me", headers=headers).json()
    assert progression["xp"] == 800
    assert progression["completed_chapters"] == ["life-taxation"]
    assert "Tax Slayer" in progression["badges"]
    assert "Policy Strategist" in progression["titles"]


def test_boss_battle_lost_on_first_miss_and_restart(client, catalog):
    headers = _register(client, "fallen@example.com")
    _play_quiz(client, headers, catalog, "life-taxation")
    data = client.post("/api/v1/chapters/life-taxation/boss-battles", headers=headers).json()

    question = catalog.get("life-taxation").boss.quiz[0]
    correct = _index_of(data["question"], _correct_text(question))
    wrong = (correct + 1) % len(question.choices)
    lost = client.post(
        f"/api/v1/boss-battles/{data['id']}/answer",
        json={"choice_index": wrong},
        headers=headers,
    )
    assert lost.status_code == 200
    assert lost.json()["status"] == "lost"
    assert lost.json()["last_answer"]["correct"] is False

    again = client.post(
        f"/api/v1/boss-battles/{data['id']}/answer",
        json={"choice_index": correct},
        headers=headers,
    )
    assert again.status_code == 409

    restarted = client.post(f"/api/v1/boss-battles/{data['id']}/restart", headers=headers)
    assert restarted.status_code == 200
    assert restarted.json()["status"] == "in_progress"
    assert restarted.json()["lives_remaining"] == 1


def test_players_cannot_grant_their_own_progress(client):
    headers = _register(client, "cheater@example.com")

    grants = [
        ("/api/v1/progression/xp", {"amount": 1_000_000}),
        ("/api/v1/progression/badges", {"badge": "A"}),
        ("/api/v1/progression/titles", {"title": "B"}),
        ("/api/v1/progression/chapters/life-taxation/complete", None),
    ]
    for path, body in grants:
        assert client.post(path, json=body, headers=headers).status_code in (404, 405)

    progression = client.get("/api/v1/progression/me", headers=headers).json()
    assert progression["xp"] == 0
    assert progression["badges"] == []
    assert progression["completed_chapters"] == []
    assert progression["unlocked_tiers"] == [1]


def test_admin_granted_xp_unlocks_next_tier(client):
    admin = _register(client, ADMIN_EMAIL)
    headers = _register(client, "climber@example.com")
    user_id = client.get("/api/v1/auth/me", headers=headers).json()["id"]

    edited = client.patch(f"/api/v1/admin/users/{user_id}", json={"xp": 5100}, headers=admin)
    assert edited.status_code == 200

    progression = client.get("/api/v1/progression/me", headers=headers).json()
    assert progression["level"] == 6
    assert progression["unlocked_tiers"] == [1, 2]

    chapters = client.get("/api/v1/chapters", headers=headers).json()["chapters"]
    locked = {chapter["id"]: chapter["locked"] for chapter in chapters}
    assert locked["seg-funds-guarantees"] is False
    assert locked["sickness-disability"] is True

    assert client.get("/api/v1/notifications", headers=headers).status_code == 200
    assert client.get("/api/v1/notifications", headers=headers).json() == []
