async def complete(client, headers, roadmap_id, *steps, time_spent=0):
    for phase_id, step_id in steps:
        response = await client.put(f"/api/roadmaps/{roadmap_id}/progress", headers=headers, json={
            "action": "complete_step", "phaseId": phase_id, "stepId": step_id, "timeSpent": time_spent,
        })
        assert response.status_code == 200, response.text


async def test_dashboard(client, auth_headers, generate):
    started = await generate(auth_headers, field="Data Science")
    await generate(auth_headers, field="DevOps", complete=False)
    await complete(client, auth_headers, started, ("phase-1", "step-1"), time_spent=2)

    response = await client.get("/api/progress/dashboard", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    stats = data["stats"]
    assert stats["totalRoadmaps"] == 2
    assert stats["completedRoadmaps"] == 0
    assert stats["inProgressRoadmaps"] == 1
    assert stats["notStartedRoadmaps"] == 1
    assert stats["totalTimeSpent"] == 2
    assert stats["currentStreak"] == 1
    assert stats["totalAchievements"] == 1

    assert {r["roadmap"]["field"] for r in data["roadmaps"]} == {"Data Science", "DevOps"}
    assert [(a["roadmapId"], a["stepId"]) for a in data["recentActivity"]] == [(started, "step-1")]
    # The generating roadmap has no steps yet
    assert [(m["roadmapId"], m["stepId"]) for m in data["upcomingMilestones"]] == [(started, "step-2")]


async def test_dashboard_without_roadmaps(client, auth_headers):
    response = await client.get("/api/progress/dashboard", headers=auth_headers)

    data = response.json()["data"]
    assert data["stats"]["totalRoadmaps"] == 0
    assert data["stats"]["averageProgress"] == 0
    assert data["roadmaps"] == [] and data["recentActivity"] == []


async def test_roadmap_progress_detail(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)
    await complete(client, auth_headers, roadmap_id, ("phase-1", "step-1"), time_spent=3)

    response = await client.get(f"/api/progress/{roadmap_id}", headers=auth_headers)

    data = response.json()["data"]
    assert data["roadmap"]["id"] == roadmap_id
    assert data["stats"]["totalSteps"] == 3
    assert data["stats"]["completedSteps"] == 1
    assert data["stats"]["completedPhases"] == 0
    assert data["stats"]["timeSpent"] == 3

    first, second = data["phaseBreakdown"]
    assert (first["progress"], first["completedSteps"], first["totalSteps"]) == (50, 1, 2)
    assert first["timeSpent"] == 3
    assert first["startedAt"] is not None
    assert (second["progress"], second["startedAt"]) == (0, None)


async def test_completing_a_phase(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)
    await complete(client, auth_headers, roadmap_id, ("phase-1", "step-1"), ("phase-1", "step-2"))

    response = await client.get(f"/api/progress/{roadmap_id}", headers=auth_headers)

    data = response.json()["data"]
    assert data["stats"]["completedPhases"] == 1
    assert {a["type"] for a in data["stats"]["achievements"]} == {"first_step", "first_phase"}


async def test_completing_the_roadmap(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)
    await complete(client, auth_headers, roadmap_id,
                   ("phase-1", "step-1"), ("phase-1", "step-2"), ("phase-2", "step-3"))

    response = await client.get("/api/progress/dashboard", headers=auth_headers)

    stats = response.json()["data"]["stats"]
    assert stats["completedRoadmaps"] == 1
    assert stats["averageProgress"] == 100
    assert response.json()["data"]["upcomingMilestones"] == []


async def test_missing_progress(client, auth_headers):
    response = await client.get("/api/progress/no-such-roadmap", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Progress record not found"


async def test_update_preferences(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)

    response = await client.put(f"/api/progress/{roadmap_id}/preferences", headers=auth_headers, json={
        "studyHoursPerWeek": 5,
        "preferredStudyTimes": [{"day": "monday", "startTime": "18:00", "endTime": "20:00"}],
        "learningPreferences": {"pacePreference": "fast"},
        "customNotes": "Evenings only",
    })

    assert response.status_code == 200
    progress = response.json()["data"]
    assert progress["studyHoursPerWeek"] == 5
    assert progress["preferredStudyTimes"] == [{"day": "monday", "startTime": "18:00", "endTime": "20:00"}]
    assert progress["learningPreferences"]["pacePreference"] == "fast"
    assert progress["learningPreferences"]["difficultyPreference"] == "moderate"
    assert progress["customNotes"] == "Evenings only"


async def test_preferences_validation(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)

    response = await client.put(f"/api/progress/{roadmap_id}/preferences", headers=auth_headers, json={
        "studyHoursPerWeek": 200,
        "preferredStudyTimes": [{"day": "someday"}],
    })

    assert response.status_code == 400


async def test_log_study_session(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)

    response = await client.post(f"/api/progress/{roadmap_id}/session", headers=auth_headers, json={
        "duration": 1.5,
        "stepsWorkedOn": [
            {"phaseId": "phase-1", "stepId": "step-2", "timeSpent": 1.5},
            {"phaseId": "phase-9", "stepId": "step-9", "timeSpent": 1},
        ],
    })

    assert response.status_code == 200
    assert response.json()["data"] == {"totalTimeSpent": 1.5, "sessionCount": 1, "streakDays": 1}

    detail = await client.get(f"/api/progress/{roadmap_id}", headers=auth_headers)
    steps = detail.json()["data"]["progress"]["phases"][0]["steps"]
    assert steps[1]["timeSpent"] == 1.5
    assert steps[1]["completed"] is False


async def test_session_duration_bounds(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)

    response = await client.post(f"/api/progress/{roadmap_id}/session", headers=auth_headers,
                                 json={"duration": 30})

    assert response.status_code == 400


async def test_achievements_catalog(client, auth_headers, generate):
    roadmap_id = await generate(auth_headers)

    before = await client.get(f"/api/progress/{roadmap_id}/achievements", headers=auth_headers)
    assert before.json()["data"]["totalEarned"] == 0
    assert before.json()["data"]["totalPossible"] == 8

    await complete(client, auth_headers, roadmap_id, ("phase-1", "step-1"))
    after = await client.get(f"/api/progress/{roadmap_id}/achievements", headers=auth_headers)

    data = after.json()["data"]
    assert data["totalEarned"] == 1
    earned = {a["type"]: a for a in data["achievements"]}
    assert earned["first_step"]["earned"] is True
    assert earned["first_step"]["earnedAt"] is not None
    assert earned["roadmap_completed"] == {
        "type": "roadmap_completed",
        "title": "Roadmap Conqueror!",
        "description": "Complete the entire roadmap",
        "earned": False,
        "earnedAt": None,
    }


async def test_leaderboard(client, register, generate):
    ada_headers, _ = await register(email="ada@example.com", name="Ada Lovelace")
    alan_headers, _ = await register(email="alan@example.com", name="Alan Turing")
    ada_roadmap = await generate(ada_headers, field="Data Science")
    alan_roadmap = await generate(alan_headers, field="DevOps")
    await complete(client, ada_headers, ada_roadmap, ("phase-1", "step-1"))
    await complete(client, alan_headers, alan_roadmap, ("phase-1", "step-1"), ("phase-1", "step-2"))

    response = await client.get("/api/progress/meta/leaderboard", headers=ada_headers)

    board = response.json()["data"]
    assert [(row["rank"], row["user"]["name"], row["progress"]) for row in board] == [
        (1, "Alan Turing", 67),
        (2, "Ada Lovelace", 33),
    ]
    assert board[0]["roadmap"] == {"title": "DevOps Career Path - Beginner Level", "field": "DevOps"}

    filtered = await client.get("/api/progress/meta/leaderboard", headers=ada_headers,
                                params={"roadmapId": ada_roadmap})
    assert [row["user"]["name"] for row in filtered.json()["data"]] == ["Ada Lovelace"]


async def test_leaderboard_ties_go_to_less_time(client, register, generate):
    ada_headers, _ = await register(email="ada@example.com", name="Ada Lovelace")
    alan_headers, _ = await register(email="alan@example.com", name="Alan Turing")
    ada_roadmap = await generate(ada_headers, field="Data Science")
    alan_roadmap = await generate(alan_headers, field="DevOps")
    await complete(client, ada_headers, ada_roadmap, ("phase-1", "step-1"), time_spent=5)
    await complete(client, alan_headers, alan_roadmap, ("phase-1", "step-1"), time_spent=2)

    response = await client.get("/api/progress/meta/leaderboard", headers=ada_headers)

    assert [row["user"]["name"] for row in response.json()["data"]] == ["Alan Turing", "Ada Lovelace"]
