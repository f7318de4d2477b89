#!/usr/bin/env python3
"""
SkinJournal API Testing
Runs every route against the in-memory database from conftest.py:
1. Auth and profile: register, login, /auth/me, password change, account deletion
2. Skin quiz: questions without scoring tags, submit, stored result, profile skin type
3. Photo journal: baseline and progress entries, image download, detail blocks, delete
4. Progress: default before/after pair, explicit ids, 400 / 404 errors, analytics
5. Routine streaks, achievements and generated routines
6. Client flags for one-shot prompts
7. Skin scans, product label scans and the skincare chat
"""

import base64
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from skinjournal import server
from skinjournal.ai_gateway import CHAT_FALLBACK_REPLY, validate_product_analysis, validate_skin_analysis
from skinjournal.flags import MemoryFlagStore
from skinjournal.routine_templates import get_default_routine

TEST_EMAIL = "journal_user@test.com"
TEST_PASSWORD = "testpass123"

PNG_DATA = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\nIDATx\x9cc\x00\x01\x00\x00\x05\x00\x01\r\n-\xdb\x00\x00\x00\x00IEND\xaeB`\x82'


def create_test_image():
    """A 1x1 PNG in base64 format"""
    return base64.b64encode(PNG_DATA).decode('utf-8')


def current_user_id(client, headers):
    return client.get("/api/auth/me", headers=headers).json()["id"]


def insert_journal(fake_db, user_id, journal_id, created_at, analysis=None):
    fake_db.photo_journals.docs.append({
        'id': journal_id,
        'user_id': user_id,
        'image_url': f"/api/journal/{journal_id}/image",
        'analysis_result': analysis,
        'comparison_summary': (analysis or {}).get('summary'),
        'created_at': created_at,
    })


def insert_scan(fake_db, user_id, scan_id, created_at, **fields):
    fake_db.skin_analyses.docs.append({
        'id': scan_id,
        'user_id': user_id,
        'skin_type': 'oily',
        'detected_issues': ['acne'],
        'confidence_score': 0.8,
        'skin_health_score': None,
        'detailed_analysis': 'Shiny T-zone.',
        'recommendations': '- Use a gel cleanser',
        'is_fallback': False,
        'created_at': created_at,
        **fields,
    })


class TestAuthAndProfile:
    def test_user_registration(self, client, auth_headers, fake_db):
        """Test 1: Registration returns a token and stores a hashed password"""
        me = client.get("/api/auth/me", headers=auth_headers)
        assert me.status_code == 200
        assert me.json()["email"] == TEST_EMAIL
        assert me.json()["profile"]["language"] == "en"

        stored = fake_db.users.docs[0]
        assert stored["password"] != TEST_PASSWORD

    def test_duplicate_email_and_short_password(self, client, auth_headers):
        """Test 2: Duplicate email and short password are rejected"""
        response = client.post("/api/auth/register", json={
            "email": TEST_EMAIL, "password": TEST_PASSWORD, "name": "Again"
        })
        assert response.status_code == 400

        response = client.post("/api/auth/register", json={
            "email": "short@test.com", "password": "123", "name": "Short"
        })
        assert response.status_code == 400

    def test_login(self, client, auth_headers):
        """Test 3: Login with correct and wrong password"""
        response = client.post("/api/auth/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD})
        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

        response = client.post("/api/auth/login", json={"email": TEST_EMAIL, "password": "wrongpass"})
        assert response.status_code == 401

    def test_requires_token(self, client):
        """Test 4: Protected routes reject missing and invalid tokens"""
        assert client.get("/api/journal").status_code in (401, 403)
        response = client.get("/api/journal", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_update_profile_and_password(self, client, auth_headers):
        """Test 5: Profile update and password change"""
        response = client.put("/api/profile", headers=auth_headers, json={
            "age": 29, "skin_goals": ["hydration"], "language": "en"
        })
        assert response.status_code == 200
        assert response.json()["profile"]["age"] == 29

        response = client.put("/api/profile/password", headers=auth_headers, json={
            "current_password": "wrongpass", "new_password": "newpass123"
        })
        assert response.status_code == 401

        response = client.put("/api/profile/password", headers=auth_headers, json={
            "current_password": TEST_PASSWORD, "new_password": "newpass123"
        })
        assert response.status_code == 200
        response = client.post("/api/auth/login", json={"email": TEST_EMAIL, "password": "newpass123"})
        assert response.status_code == 200


class TestSkinQuiz:
    def test_questions_hide_scoring_tags(self, client):
        """Test 6: Question catalog is public and has no scoring tags"""
        response = client.get("/api/quiz/questions")
        assert response.status_code == 200
        questions = response.json()
        assert [q["id"] for q in questions] == ["q1", "q2", "q3"]
        for question in questions:
            for option in question["options"]:
                assert set(option) == {"value", "label"}

    def test_result_before_quiz(self, client, auth_headers):
        """Test 7: No result before the quiz is taken"""
        assert client.get("/api/quiz/result", headers=auth_headers).status_code == 404

    def test_submit_quiz(self, client, auth_headers):
        """Test 8: Submit scores the quiz and updates the profile"""
        response = client.post("/api/quiz/submit", headers=auth_headers, json={
            "answers": {"q1": "b", "q2": "c", "q3": "a"}
        })
        assert response.status_code == 200
        data = response.json()
        assert data["skin_type"] == "oily"
        assert data["is_sensitive"] is True
        assert data["profile_skin_type"] == "oily sensitive"
        assert data["scores"]["oily"] == 2

        me = client.get("/api/auth/me", headers=auth_headers).json()
        assert me["profile"]["skin_type"] == "oily sensitive"

        result = client.get("/api/quiz/result", headers=auth_headers).json()
        assert result["skin_type"] == "oily sensitive"
        assert result["answers"] == {"q1": "b", "q2": "c", "q3": "a"}

    def test_resubmit_replaces_answers(self, client, auth_headers, fake_db):
        """Test 9: One questionnaire per user"""
        client.post("/api/quiz/submit", headers=auth_headers, json={"answers": {"q1": "a"}})
        response = client.post("/api/quiz/submit", headers=auth_headers, json={"answers": {}})
        assert response.json()["skin_type"] == "normal"
        assert len(fake_db.skin_questionnaires.docs) == 1
        assert fake_db.skin_questionnaires.docs[0]["skin_type"] == "normal"

    def test_tie_is_combination(self, client, auth_headers):
        """Test 10: A tie between skin types is reported as combination"""
        response = client.post("/api/quiz/submit", headers=auth_headers, json={
            "answers": {"q1": "a", "q2": "c"}
        })
        assert response.json()["skin_type"] == "combination"
        assert response.json()["is_sensitive"] is False


class TestPhotoJournal:
    def test_baseline_then_progress_entry(self, client, auth_headers, ai_analysis):
        """Test 11: First photo is analysed as baseline, the next one as progress"""
        first = client.post("/api/journal", headers=auth_headers, json={"image_base64": create_test_image()})
        assert first.status_code == 200
        assert ai_analysis.call_args.args[1] is False

        second = client.post("/api/journal", headers=auth_headers, json={
            "image_base64": f"data:image/png;base64,{create_test_image()}"
        })
        assert second.status_code == 200
        assert ai_analysis.call_args.args[1] is True
        # data URL prefix is stripped before the gateway sees the image
        assert ai_analysis.call_args.args[0] == create_test_image()

        entry = second.json()
        assert entry["image_url"] == f"/api/journal/{entry['id']}/image"
        assert entry["comparison_summary"] == entry["analysis_result"]["summary"]

        journals = client.get("/api/journal", headers=auth_headers).json()
        assert [j["id"] for j in journals] == [entry["id"], first.json()["id"]]

    def test_invalid_image(self, client, auth_headers, ai_analysis):
        """Test 12: Invalid base64 is a client error and is not analysed"""
        response = client.post("/api/journal", headers=auth_headers, json={"image_base64": "not base64!!"})
        assert response.status_code == 400
        ai_analysis.assert_not_called()

    def test_line_wrapped_base64(self, client, auth_headers, ai_analysis):
        """Test 27: Line-wrapped base64 from MIME encoders is accepted"""
        wrapped = base64.encodebytes(PNG_DATA).decode('utf-8')
        assert "\n" in wrapped.rstrip()

        response = client.post("/api/journal", headers=auth_headers, json={"image_base64": wrapped})
        assert response.status_code == 200
        assert ai_analysis.call_args.args[0] == create_test_image()

        image = client.get(response.json()["image_url"], headers=auth_headers)
        assert image.content == PNG_DATA

    def test_image_and_detail(self, client, auth_headers, ai_analysis):
        """Test 13: Stored image is served back and the detail has display blocks"""
        ai_analysis.side_effect = None
        ai_analysis.return_value = {
            'issues': ['acne'],
            'summary': '**Great start!** Your skin looks calm.',
            'recommendations': '1. Cleanse gently\n2. Use sunscreen',
        }
        entry = client.post("/api/journal", headers=auth_headers, json={"image_base64": create_test_image()}).json()

        image = client.get(entry["image_url"], headers=auth_headers)
        assert image.status_code == 200
        assert image.content == PNG_DATA
        assert image.headers["content-type"] == "image/png"

        detail = client.get(f"/api/journal/{entry['id']}", headers=auth_headers).json()
        assert detail["summary_blocks"][0]["type"] == "paragraph"
        assert detail["summary_blocks"][0]["segments"][0] == {"text": "Great start!", "bold": True}
        assert detail["recommendation_blocks"][0]["style"] == "ordered"

    def test_ai_failure_is_500(self, client, auth_headers, ai_analysis):
        """Test 14: Unexpected errors during save are reported as 500"""
        ai_analysis.side_effect = RuntimeError("database down")
        response = client.post("/api/journal", headers=auth_headers, json={"image_base64": create_test_image()})
        assert response.status_code == 500

    def test_delete_entry(self, client, auth_headers, fake_db):
        """Test 15: Delete removes the entry and its image"""
        entry = client.post("/api/journal", headers=auth_headers, json={"image_base64": create_test_image()}).json()
        response = client.delete(f"/api/journal/{entry['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert fake_db.photo_journals.docs == []
        assert fake_db.journal_images.docs == []

        assert client.delete(f"/api/journal/{entry['id']}", headers=auth_headers).status_code == 404
        assert client.get(f"/api/journal/{entry['id']}", headers=auth_headers).status_code == 404


class TestProgress:
    def test_compare_needs_two_photos(self, client, auth_headers, fake_db):
        """Test 16: Comparison with fewer than two photos is rejected"""
        assert client.get("/api/progress/compare", headers=auth_headers).status_code == 400

        user_id = current_user_id(client, auth_headers)
        insert_journal(fake_db, user_id, "only", datetime(2024, 1, 1))
        assert client.get("/api/progress/compare", headers=auth_headers).status_code == 400

    def test_compare_default_pair(self, client, auth_headers, fake_db):
        """Test 17: Earliest and latest photos are compared by default"""
        user_id = current_user_id(client, auth_headers)
        start = datetime(2024, 1, 1, 8, 0)
        insert_journal(fake_db, user_id, "middle", start + timedelta(days=10), {
            'improvements': {'texture': 5}, 'issues': ['acne', 'redness'],
        })
        insert_journal(fake_db, user_id, "latest", start + timedelta(days=30), {
            'improvements': {
                'texture': {'status': 'improved', 'percentage': 20},
                'acne': {'status': 'improved', 'percentage': -30},
            },
            'issues': ['acne'],
        })
        insert_journal(fake_db, user_id, "baseline", start, {'issues': ['acne', 'redness', 'pores']})

        response = client.get("/api/progress/compare", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["before"]["id"] == "baseline"
        assert data["after"]["id"] == "latest"
        assert data["days_diff"] == 30
        assert data["issues_before"] == 3
        assert data["issues_after"] == 1
        assert data["status"] == "improved"
        assert [m["label"] for m in data["metrics"]] == ["Texture", "Acne", "Overall"]
        assert data["metrics"][1]["after_value"] == 80

    def test_compare_explicit_ids(self, client, auth_headers, fake_db):
        """Test 18: Explicit ids pick the pair, unknown ids are 404"""
        user_id = current_user_id(client, auth_headers)
        insert_journal(fake_db, user_id, "a", datetime(2024, 2, 1), {'issues': ['acne', 'pores']})
        insert_journal(fake_db, user_id, "b", datetime(2024, 2, 8), {'issues': ['acne']})
        insert_journal(fake_db, user_id, "c", datetime(2024, 2, 15), {'issues': []})

        response = client.get("/api/progress/compare?before_id=a&after_id=b", headers=auth_headers)
        data = response.json()
        assert (data["before"]["id"], data["after"]["id"]) == ("a", "b")
        assert data["metrics"] == [{
            "label": "Overall Condition", "before_value": 50, "after_value": 100,
            "improvement": 50, "category": "positive",
        }]

        response = client.get("/api/progress/compare?before_id=b", headers=auth_headers)
        assert response.json()["after"]["id"] == "c"

        response = client.get("/api/progress/compare?before_id=missing", headers=auth_headers)
        assert response.status_code == 404

    def test_compare_other_users_photos(self, client, auth_headers, fake_db):
        """Test 19: Photos of another user cannot be compared"""
        insert_journal(fake_db, "someone-else", "x", datetime(2024, 1, 1))
        insert_journal(fake_db, "someone-else", "y", datetime(2024, 1, 2))
        response = client.get("/api/progress/compare?before_id=x&after_id=y", headers=auth_headers)
        assert response.status_code == 404

    def test_analytics(self, client, auth_headers, fake_db):
        """Test 20: Analytics scores the latest skin scan and charts the journal"""
        response = client.get("/api/progress/analytics", headers=auth_headers).json()
        assert response == {"health_score": 50, "total_photos": 0, "total_scans": 0, "progress_chart": []}

        user_id = current_user_id(client, auth_headers)
        insert_journal(fake_db, user_id, "old", datetime(2024, 1, 1), {'issues': ['acne']})
        insert_journal(fake_db, user_id, "new", datetime(2024, 1, 15), {
            'improvements': {'texture': {'status': 'improved'}, 'pores': {'status': 'same'}},
            'issues': ['acne'],
            # journal analyses never feed the score
            'skin_health_score': 12,
        })
        insert_scan(fake_db, user_id, "scan-old", datetime(2024, 1, 2), skin_health_score=40)
        insert_scan(fake_db, user_id, "scan-new", datetime(2024, 1, 10), skin_health_score=77)

        data = client.get("/api/progress/analytics", headers=auth_headers).json()
        assert data["health_score"] == 77
        assert data["total_photos"] == 2
        assert data["total_scans"] == 2
        assert data["progress_chart"] == [
            {"date": "2024-01-01", "improvements": 0},
            {"date": "2024-01-15", "improvements": 20},
        ]


class TestRoutine:
    def test_complete_day(self, client, auth_headers):
        """Test 21: Completing the routine starts a streak once per day"""
        progress = client.get("/api/routine/progress", headers=auth_headers).json()
        assert progress["streak"] == 0

        first = client.post("/api/routine/complete-day", headers=auth_headers).json()
        assert first["streak"] == 1
        assert [a["achievement_type"] for a in first["achievements"]] == ["first_routine"]

        again = client.post("/api/routine/complete-day", headers=auth_headers).json()
        assert again["streak"] == 1
        assert again["message"] == "Already completed today!"
        assert again["achievements"] == []

        achievements = client.get("/api/routine/achievements", headers=auth_headers).json()
        assert len(achievements) == 1
        assert achievements[0]["title"] == "First Routine"

    def test_week_streak_bonus(self, client, auth_headers, fake_db):
        """Test 22: Seventh day in a row earns the streak bonus"""
        user_id = current_user_id(client, auth_headers)
        yesterday = (datetime.utcnow() - timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        fake_db.routine_progress.docs.append({
            'user_id': user_id, 'streak': 6, 'longest_streak': 6,
            'total_days_completed': 6, 'last_completed_date': yesterday.isoformat(),
        })

        data = client.post("/api/routine/complete-day", headers=auth_headers).json()
        assert data["streak"] == 7
        assert data["bonus_earned"] == 3
        assert "week_streak" in [a["achievement_type"] for a in data["achievements"]]

        progress = client.get("/api/routine/progress", headers=auth_headers).json()
        assert progress["bonus_points"] == 3

        client.post("/api/routine/reset-streak", headers=auth_headers)
        progress = client.get("/api/routine/progress", headers=auth_headers).json()
        assert progress["streak"] == 0
        assert progress["longest_streak"] == 7


class TestClientFlags:
    def test_flags_round_trip(self, client, auth_headers):
        """Test 23: Seen flags persist and can be reset"""
        assert client.get("/api/preferences/flags", headers=auth_headers).json() == {
            "has-seen-onboarding": False, "pwa-install-prompt-seen": False
        }

        response = client.post("/api/preferences/flags/has-seen-onboarding", headers=auth_headers)
        assert response.json()["has-seen-onboarding"] is True
        assert client.get("/api/preferences/flags", headers=auth_headers).json()["has-seen-onboarding"] is True

        response = client.delete("/api/preferences/flags/has-seen-onboarding", headers=auth_headers)
        assert response.json()["has-seen-onboarding"] is False

    def test_unknown_flag(self, client, auth_headers):
        """Test 24: Unknown flag names are rejected"""
        response = client.post("/api/preferences/flags/tour-v2", headers=auth_headers)
        assert response.status_code == 400

    def test_injected_store(self, client, auth_headers):
        """Test 25: The flag store can be swapped through dependency injection"""
        store = MemoryFlagStore()
        server.app.dependency_overrides[server.get_flag_store] = lambda: store

        client.post("/api/preferences/flags/pwa-install-prompt-seen", headers=auth_headers)
        user_id = current_user_id(client, auth_headers)
        assert store._flags == {user_id: {"pwa-install-prompt-seen": True}}


class TestSkinScan:
    def test_scan_updates_profile(self, client, auth_headers, skin_analysis, fake_db):
        """Test 28: A skin scan is stored and sets the profile skin type"""
        skin_analysis.side_effect = None
        skin_analysis.return_value = validate_skin_analysis({
            'skin_type': 'Oily',
            'detected_issues': ['enlarged pores', {'name': 'acne'}],
            'confidence_score': 0.9,
            'skin_health_score': 68,
            'detailed_analysis': 'Shiny T-zone with a few blemishes.',
            'recommendations': ['Use a gel cleanser', 'Add niacinamide'],
        })

        response = client.post("/api/scan/analyze", headers=auth_headers, json={
            "image_base64": f"data:image/png;base64,{create_test_image()}"
        })
        assert response.status_code == 200
        scan = response.json()
        assert scan["skin_type"] == "oily"
        assert scan["detected_issues"] == ["enlarged pores", "acne"]
        assert scan["recommendation_blocks"][0]["style"] == "bullet"
        assert skin_analysis.call_args.args[0] == create_test_image()

        me = client.get("/api/auth/me", headers=auth_headers).json()
        assert me["profile"]["skin_type"] == "oily"

        stored = fake_db.skin_analyses.docs[0]
        assert stored["user_id"] == me["id"]
        assert "image_base64" not in scan

    def test_fallback_scan_keeps_profile(self, client, auth_headers):
        """Test 29: A fallback scan is stored but leaves the profile skin type alone"""
        client.post("/api/quiz/submit", headers=auth_headers, json={"answers": {"q1": "a"}})

        response = client.post("/api/scan/analyze", headers=auth_headers, json={"image_base64": create_test_image()})
        assert response.status_code == 200
        assert response.json()["is_fallback"] is True

        me = client.get("/api/auth/me", headers=auth_headers).json()
        assert me["profile"]["skin_type"] == "dry"

    def test_scan_invalid_image(self, client, auth_headers, skin_analysis):
        """Test 30: Invalid scan images are rejected before the AI call"""
        response = client.post("/api/scan/analyze", headers=auth_headers, json={"image_base64": "%%%"})
        assert response.status_code == 400
        skin_analysis.assert_not_called()

    def test_history_detail_and_delete(self, client, auth_headers, fake_db):
        """Test 31: Scan history is newest first and scans can be deleted"""
        user_id = current_user_id(client, auth_headers)
        insert_scan(fake_db, user_id, "first", datetime(2024, 3, 1))
        insert_scan(fake_db, user_id, "second", datetime(2024, 3, 8), skin_type='dry')
        insert_scan(fake_db, "someone-else", "foreign", datetime(2024, 3, 9))

        history = client.get("/api/scan/history", headers=auth_headers).json()
        assert [s["id"] for s in history] == ["second", "first"]

        detail = client.get("/api/scan/first", headers=auth_headers).json()
        assert detail["recommendation_blocks"][0]["type"] == "list"
        assert client.get("/api/scan/foreign", headers=auth_headers).status_code == 404

        assert client.delete("/api/scan/first", headers=auth_headers).status_code == 200
        assert client.delete("/api/scan/first", headers=auth_headers).status_code == 404
        assert [s["id"] for s in client.get("/api/scan/history", headers=auth_headers).json()] == ["second"]


class TestProductScan:
    def test_product_scan(self, client, auth_headers, monkeypatch):
        """Test 32: Product labels are checked for allergens and irritants"""
        analyze = AsyncMock(return_value=validate_product_analysis({
            'product_name': 'Daily Toner',
            'ingredients_detected': ['Water', 'Alcohol Denat.', 'Fragrance'],
            'allergens': {'items': ['Fragrance'], 'severity': 'medium'},
            'irritants': {'items': ['Alcohol Denat.'], 'severity': 'high'},
            'safety_score': 0.55,
            'analysis_summary': 'Contains fragrance and drying alcohol.',
        }))
        monkeypatch.setattr(server, 'analyze_product_image', analyze)

        response = client.post("/api/product/scan", headers=auth_headers, json={"image_base64": create_test_image()})
        assert response.status_code == 200
        scan = response.json()
        assert scan["product_name"] == "Daily Toner"
        assert scan["allergens_detected"] == {"items": ["Fragrance"], "severity": "medium"}
        assert scan["irritants_detected"]["severity"] == "high"
        assert scan["safety_score"] == 0.55
        assert scan["patch_test_recommended"] is True

        scans = client.get("/api/product/scans", headers=auth_headers).json()
        assert [s["id"] for s in scans] == [scan["id"]]

        assert client.delete(f"/api/product/scans/{scan['id']}", headers=auth_headers).status_code == 200
        assert client.get("/api/product/scans", headers=auth_headers).json() == []
        assert client.delete(f"/api/product/scans/{scan['id']}", headers=auth_headers).status_code == 404

    def test_product_scan_fallback(self, client, auth_headers):
        """Test 33: Without the AI gateway the scan asks for a patch test"""
        scan = client.post("/api/product/scan", headers=auth_headers, json={"image_base64": create_test_image()}).json()
        assert scan["product_name"] == "Unknown Product"
        assert scan["safety_score"] is None
        assert scan["patch_test_recommended"] is True


class TestRoutineGeneration:
    def test_default_routine_without_scan(self, client, auth_headers):
        """Test 34: Users without a scan get the template for their profile skin type"""
        client.put("/api/profile", headers=auth_headers, json={"skin_type": "dry", "language": "en"})

        data = client.post("/api/routine/generate", headers=auth_headers).json()
        assert data["skin_type"] == "dry"
        assert data["is_default"] is True
        assert data["routine"] == get_default_routine("dry")

    def test_routine_from_latest_scan(self, client, auth_headers, fake_db, monkeypatch):
        """Test 35: The latest skin scan drives the generated routine"""
        user_id = current_user_id(client, auth_headers)
        insert_scan(fake_db, user_id, "old", datetime(2024, 4, 1), skin_type='dry')
        insert_scan(fake_db, user_id, "new", datetime(2024, 4, 20), skin_type='oily')

        routine = {'morning_routine': {}, 'evening_routine': {}, 'weekly_treatments': [], 'tips': ['Stay consistent']}
        generate = AsyncMock(return_value={'routine': routine, 'is_default': False})
        monkeypatch.setattr(server, 'generate_personalized_routine', generate)

        data = client.post("/api/routine/generate", headers=auth_headers).json()
        assert data == {'skin_type': 'oily', 'routine': routine, 'is_default': False}
        analysis, skin_type = generate.call_args.args
        assert analysis["id"] == "new"
        assert skin_type == "oily"


class TestChat:
    def test_chat_and_history(self, client, auth_headers, monkeypatch):
        """Test 36: Chat replies are stored and listed oldest first"""
        client.put("/api/profile", headers=auth_headers, json={"skin_type": "oily", "age": 31, "language": "en"})
        reply = AsyncMock(side_effect=["Hi there!\n\n• Use a gel cleanser", "• Yes, daily SPF"])
        monkeypatch.setattr(server, 'chat_with_ai', reply)

        first = client.post("/api/chat", headers=auth_headers, json={"message": "  What cleanser?  "}).json()
        assert first["message"] == "What cleanser?"
        assert first["response_blocks"][-1]["type"] == "list"
        message, profile = reply.call_args.args
        assert message == "What cleanser?"
        assert profile["skin_type"] == "oily"

        client.post("/api/chat", headers=auth_headers, json={"message": "Sunscreen?"})
        history = client.get("/api/chat/history", headers=auth_headers).json()
        assert [h["message"] for h in history] == ["What cleanser?", "Sunscreen?"]

    def test_empty_message_and_fallback(self, client, auth_headers):
        """Test 37: Blank messages are rejected, gateway failures get the fallback reply"""
        assert client.post("/api/chat", headers=auth_headers, json={"message": "   "}).status_code == 400

        data = client.post("/api/chat", headers=auth_headers, json={"message": "Hello"}).json()
        assert data["ai_response"] == CHAT_FALLBACK_REPLY


class TestAccount:
    def test_delete_account(self, client, auth_headers, fake_db):
        """Test 26: Deleting the account removes all user data"""
        client.post("/api/journal", headers=auth_headers, json={"image_base64": create_test_image()})
        client.post("/api/quiz/submit", headers=auth_headers, json={"answers": {"q1": "a"}})
        client.post("/api/routine/complete-day", headers=auth_headers)
        client.post("/api/preferences/flags/has-seen-onboarding", headers=auth_headers)
        client.post("/api/scan/analyze", headers=auth_headers, json={"image_base64": create_test_image()})
        client.post("/api/product/scan", headers=auth_headers, json={"image_base64": create_test_image()})
        client.post("/api/chat", headers=auth_headers, json={"message": "Hello"})

        response = client.delete("/api/account", headers=auth_headers)
        assert response.status_code == 200
        for name in ("users", "photo_journals", "journal_images", "skin_questionnaires",
                     "routine_progress", "achievements", "client_flags", "skin_analyses",
                     "product_scans", "chat_messages"):
            assert getattr(fake_db, name).docs == []

        assert client.get("/api/auth/me", headers=auth_headers).status_code == 401

    def test_delete_account_clears_injected_flag_store(self, client, auth_headers):
        """Test 38: Account deletion clears flags through the configured flag store"""
        store = MemoryFlagStore()
        server.app.dependency_overrides[server.get_flag_store] = lambda: store
        client.post("/api/preferences/flags/has-seen-onboarding", headers=auth_headers)
        assert store._flags != {}

        assert client.delete("/api/account", headers=auth_headers).status_code == 200
        assert store._flags == {}
