"""
HTTP API tests for the rota, on-call, rota-config, workflow and health blueprints.

Covers:
    - Organisation context resolution (header / query / missing / invalid)
    - Service exceptions mapped to status codes and error codes
    - Happy paths of every endpoint group
"""

# ── Helpers ──────────────────────────────────────────────────────────────


def _open_week(client, headers, site):
    res = client.get(f"/api/v1/sites/{site.id}/rota/weeks/2024-06-05", headers=headers)
    assert res.status_code == 200
    return res.get_json()["week"]


def _add_shift(client, headers, week_id, **body):
    payload = {"shift_date": "2024-06-05", "shift_type": "am"}
    payload.update(body)
    return client.post(f"/api/v1/rota/weeks/{week_id}/shifts", json=payload, headers=headers)


# ── Health & context ─────────────────────────────────────────────────────


def test_health_endpoints(client):
    assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    assert res.get_json()["checks"]["database"]["status"] == "ok"


def test_missing_organisation_is_400(client, site):
    res = client.get(f"/api/v1/sites/{site.id}/rota/weeks/2024-06-03")
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


def test_non_integer_organisation_is_400(client, site):
    res = client.get(f"/api/v1/sites/{site.id}/rota/weeks/2024-06-03",
                     headers={"X-Organisation-Id": "abc"})
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


def test_organisation_from_query_string(client, site, default_org):
    res = client.get(f"/api/v1/sites/{site.id}/rota/weeks/2024-06-03"
                     f"?organisation_id={default_org.id}")
    assert res.status_code == 200


def test_other_organisation_gets_404(client, site):
    res = client.get(f"/api/v1/sites/{site.id}/rota/weeks/2024-06-03",
                     headers={"X-Organisation-Id": "424242"})
    assert res.status_code == 404
    assert res.get_json()["error"] == "Site not found"


def test_request_id_header(client):
    res = client.get("/api/v1/rota/oncalls?week_start=2024-06-03",
                     headers={"X-Organisation-Id": "1", "X-Request-ID": "abc-123"})
    assert res.headers.get("X-Request-ID") == "abc-123"


def test_non_json_post_is_415(client, headers, week):
    res = client.post(f"/api/v1/rota/weeks/{week['id']}/shifts", data="shift_date=x",
                      headers=headers, content_type="text/plain")
    assert res.status_code == 415


# ── Rota ─────────────────────────────────────────────────────────────────


class TestRotaApi:
    def test_week_schedule_created_on_first_access(self, client, headers, site, manager):
        week = _open_week(client, headers, site)
        assert week["week_start"] == "2024-06-03"
        assert week["status"] == "draft"
        assert week["created_by"] == manager.id

    def test_add_list_update_delete_shift(self, client, headers, site, staff, rooms):
        week = _open_week(client, headers, site)

        res = _add_shift(client, headers, week["id"], user_id=staff["gp"].id,
                         facility_id=rooms[0].id)
        assert res.status_code == 201
        shift = res.get_json()["shifts"][0]
        assert shift["user_name"] == "Grace Patel"

        res = client.patch(f"/api/v1/rota/shifts/{shift['id']}",
                           json={"shift_type": "full_day"}, headers=headers)
        assert res.get_json()["shifts"][0]["shift_type"] == "full_day"

        res = client.get(f"/api/v1/rota/weeks/{week['id']}/shifts", headers=headers)
        assert len(res.get_json()["shifts"]) == 1

        res = client.delete(f"/api/v1/rota/shifts/{shift['id']}", headers=headers)
        assert res.get_json()["shifts"] == []

    def test_add_shift_requires_fields(self, client, headers, week):
        res = client.post(f"/api/v1/rota/weeks/{week['id']}/shifts",
                          json={"shift_type": "am"}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "shift_date is required"

    def test_custom_without_times_is_422(self, client, headers, week, staff):
        res = _add_shift(client, headers, week["id"], user_id=staff["gp"].id,
                         shift_type="custom")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_split_custom_shift(self, client, headers, week, staff):
        res = _add_shift(client, headers, week["id"], user_id=staff["gp"].id,
                         shift_type="custom", custom_start_time="11:00", custom_end_time="15:00")
        assert len(res.get_json()["shifts"]) == 2

    def test_clear_day(self, client, headers, week, staff):
        _add_shift(client, headers, week["id"], user_id=staff["gp"].id)
        res = client.delete(f"/api/v1/rota/weeks/{week['id']}/days/2024-06-05/shifts",
                            headers=headers)
        assert res.status_code == 200
        assert res.get_json()["shifts"] == []

    def test_status_update(self, client, headers, week):
        res = client.put(f"/api/v1/rota/weeks/{week['id']}/status",
                         json={"status": "published"}, headers=headers)
        assert res.get_json()["status"] == "published"

        res = client.put(f"/api/v1/rota/weeks/{week['id']}/status", json={}, headers=headers)
        assert res.status_code == 400

    def test_violations_counts(self, client, headers, week, rooms):
        res = client.get(f"/api/v1/rota/weeks/{week['id']}/violations", headers=headers)
        body = res.get_json()
        assert body["errors"] == 5            # on-call manager, Mon-Fri
        assert body["warnings"] == 5 * 2 + 5 * 4
        assert len(body["violations"]) == body["errors"] + body["warnings"]

    def test_hours_and_staffing(self, client, headers, week, staff):
        _add_shift(client, headers, week["id"], user_id=staff["gp"].id)

        hours = client.get(f"/api/v1/rota/weeks/{week['id']}/hours", headers=headers).get_json()
        assert hours["staff_hours"][0]["scheduled_hours"] == 4

        staffing = client.get(f"/api/v1/rota/weeks/{week['id']}/staffing",
                              headers=headers).get_json()
        assert len(staffing["days"]) == 7

    def test_confirm_and_reset_day(self, client, headers, week):
        base = f"/api/v1/rota/weeks/{week['id']}"
        res = client.post(f"{base}/confirmations", headers=headers, json={
            "shift_date": "2024-06-05",
            "status": "confirmed_with_overrides",
            "overrides": [{"rule_type": "no_oncall", "rule_description": "No On Call Manager",
                           "reason": "Covered by neighbouring practice"}],
        })
        assert res.status_code == 200
        assert len(res.get_json()["overrides"]) == 1

        listed = client.get(f"{base}/confirmations", headers=headers).get_json()
        assert listed["confirmations"][0]["status"] == "confirmed_with_overrides"

        assert client.delete(f"{base}/confirmations/2024-06-05", headers=headers).status_code == 204
        assert client.get(f"{base}/confirmations", headers=headers).get_json()["confirmations"] == []
        assert len(client.get(f"{base}/overrides", headers=headers).get_json()["overrides"]) == 1

    def test_confirm_rejects_malformed_overrides(self, client, headers, week):
        res = client.post(f"/api/v1/rota/weeks/{week['id']}/confirmations", headers=headers,
                          json={"shift_date": "2024-06-05", "status": "confirmed",
                                "overrides": "none"})
        assert res.status_code == 400

    def test_confirm_without_actor_is_rejected(self, client, headers, week):
        anonymous = {"X-Organisation-Id": headers["X-Organisation-Id"]}
        res = client.post(f"/api/v1/rota/weeks/{week['id']}/confirmations", headers=anonymous,
                          json={"shift_date": "2024-06-05", "status": "confirmed"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"actor_id": "required"}
        assert client.get(f"/api/v1/rota/weeks/{week['id']}/confirmations",
                          headers=headers).get_json()["confirmations"] == []

    def test_unknown_shift_is_404(self, client, headers):
        res = client.delete("/api/v1/rota/shifts/9999", headers=headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ── On-call ──────────────────────────────────────────────────────────────


class TestOncallApi:
    def test_add_list_delete(self, client, headers, staff):
        res = client.post("/api/v1/rota/oncalls", headers=headers,
                          json={"oncall_date": "2024-06-04", "oncall_slot": 1,
                                "user_id": staff["gp"].id})
        assert res.status_code == 201

        listed = client.get("/api/v1/rota/oncalls?week_start=2024-06-03", headers=headers)
        assert [o["oncall_slot"] for o in listed.get_json()["oncalls"]] == [1]

        res = client.delete("/api/v1/rota/oncalls/2024-06-04/1", headers=headers)
        assert res.get_json() == {"deleted": 1}

    def test_list_requires_week_start(self, client, headers):
        assert client.get("/api/v1/rota/oncalls", headers=headers).status_code == 400

    def test_invalid_slot_is_422(self, client, headers, staff):
        res = client.post("/api/v1/rota/oncalls", headers=headers,
                          json={"oncall_date": "2024-06-04", "oncall_slot": 5,
                                "user_id": staff["gp"].id})
        assert res.status_code == 422

    def test_copy_day(self, client, headers, staff):
        for slot in (1, 2):
            client.post("/api/v1/rota/oncalls", headers=headers,
                        json={"oncall_date": "2024-06-04", "oncall_slot": slot,
                              "user_id": staff["gp"].id})
        res = client.post("/api/v1/rota/oncalls/copy", headers=headers,
                          json={"source_date": "2024-06-04", "target_date": "2024-06-05"})
        body = res.get_json()
        assert body["copied"] == 2
        assert [o["oncall_date"] for o in body["oncalls"]] == ["2024-06-05", "2024-06-05"]

        res = client.delete("/api/v1/rota/oncalls/2024-06-05", headers=headers)
        assert res.get_json() == {"deleted": 2}


# ── Rota configuration & capacity ────────────────────────────────────────


class TestRotaConfigApi:
    def test_rule_round(self, client, headers, site):
        url = f"/api/v1/sites/{site.id}/rota-rule"
        assert client.get(url, headers=headers).get_json() == {"rule": None}

        res = client.put(url, json={"pm_shift_start": "12:30", "require_oncall": True},
                         headers=headers)
        assert res.get_json()["pm_shift_start"] == "12:30"
        assert client.get(url, headers=headers).get_json()["rule"]["require_oncall"] is True

    def test_staffing_rule_lifecycle(self, client, headers, site, job_titles):
        res = client.post(f"/api/v1/sites/{site.id}/staffing-rules", headers=headers,
                          json={"job_title_id": job_titles["gp"].id, "min_staff": 1})
        assert res.status_code == 201
        staffing_id = res.get_json()["id"]

        dup = client.post(f"/api/v1/sites/{site.id}/staffing-rules", headers=headers,
                          json={"job_title_id": job_titles["gp"].id})
        assert dup.status_code == 409

        res = client.put(f"/api/v1/rota/staffing-rules/{staffing_id}", headers=headers,
                         json={"max_staff": 2})
        assert res.get_json()["max_staff"] == 2

        res = client.delete(f"/api/v1/rota/staffing-rules/{staffing_id}", headers=headers)
        assert res.status_code == 204

    def test_capacity_defaults_to_today(self, client, headers, site, staff, rooms):
        week = _open_week(client, headers, site)
        _add_shift(client, headers, week["id"], user_id=staff["gp"].id,
                   shift_type="full_day", facility_id=rooms[0].id)

        res = client.get(f"/api/v1/sites/{site.id}/capacity", headers=headers)
        body = res.get_json()
        assert body["date"] == "2024-06-05"
        assert body["total_capacity"] == 11


# ── Workflow ─────────────────────────────────────────────────────────────


class TestWorkflowApi:
    def _create(self, client, headers, site, staff, **kw):
        payload = {"name": "Fridge check", "site_id": site.id, "assignee_id": staff["gp"].id,
                   "initial_due_date": "2024-06-04", "recurrence_pattern": "daily"}
        payload.update(kw)
        return client.post("/api/v1/workflows/tasks", json=payload, headers=headers)

    def test_create_and_list(self, client, headers, site, staff):
        res = self._create(client, headers, site, staff)
        assert res.status_code == 201
        assert res.get_json()["current_due_date"] == "2024-06-05"

        body = client.get("/api/v1/workflows/tasks", headers=headers).get_json()
        assert body["total"] == 1

    def test_create_requires_name(self, client, headers, site, staff):
        assert self._create(client, headers, site, staff, name="").status_code == 400

    def test_invalid_pattern_is_422(self, client, headers, site, staff):
        res = self._create(client, headers, site, staff, recurrence_pattern="hourly")
        assert res.status_code == 422

    def test_complete_twice_conflicts(self, client, headers, site, staff):
        task_id = self._create(client, headers, site, staff).get_json()["id"]
        url = f"/api/v1/workflows/tasks/{task_id}/complete"

        assert client.post(url, json={"due_date": "2024-06-05"}, headers=headers).status_code == 201
        assert client.post(url, json={"due_date": "2024-06-05"}, headers=headers).status_code == 409

        completions = client.get(f"/api/v1/workflows/completions?task_id={task_id}",
                                 headers=headers).get_json()["completions"]
        assert len(completions) == 1

    def test_due_window(self, client, headers, site, staff):
        self._create(client, headers, site, staff)
        body = client.get("/api/v1/workflows/due?window_days=2", headers=headers).get_json()
        assert [o["current_due_date"] for o in body["occurrences"]] == ["2024-06-05", "2024-06-06"]

        res = client.get("/api/v1/workflows/due?window_days=0", headers=headers)
        assert res.status_code == 422

    def test_update_and_deactivate(self, client, headers, site, staff):
        task_id = self._create(client, headers, site, staff).get_json()["id"]
        res = client.put(f"/api/v1/workflows/tasks/{task_id}", headers=headers,
                         json={"name": "Fridge temperature check"})
        assert res.get_json()["name"] == "Fridge temperature check"

        res = client.delete(f"/api/v1/workflows/tasks/{task_id}", headers=headers)
        assert res.get_json()["is_active"] is False
        assert client.get("/api/v1/workflows/tasks", headers=headers).get_json()["total"] == 0

    def test_update_with_unknown_assignee_is_404(self, client, headers, site, staff):
        task_id = self._create(client, headers, site, staff).get_json()["id"]
        res = client.put(f"/api/v1/workflows/tasks/{task_id}", headers=headers,
                         json={"assignee_id": 99999})
        assert res.status_code == 404
        assert res.get_json()["error"] == "StaffProfile not found"

        (task,) = client.get("/api/v1/workflows/tasks", headers=headers).get_json()["tasks"]
        assert task["assignee_id"] == staff["gp"].id
