from trackerbot import referrals


def test_create_link_random_code():
    code = referrals.create_link("instagram")
    assert code and len(code) == 16
    link = referrals.get_link(code)
    assert link["source"] == "instagram"
    assert link["clicks"] == 0
    assert link["users"] == []


def test_create_link_refuses_existing_code():
    assert referrals.create_link("a", code="abc") == "abc"
    assert referrals.create_link("b", code="abc") is None
    assert referrals.get_link("abc")["source"] == "a"


def test_track_click_unknown_code():
    assert referrals.track_click("nope", 1) is False
    assert referrals.get_user_referral(1) is None


def test_first_touch_attribution():
    referrals.create_link("A", code="a")
    referrals.create_link("B", code="b")
    assert referrals.track_click("a", 7)
    assert referrals.track_click("b", 7)

    attribution = referrals.get_user_referral(7)
    assert attribution["source_link"] == "a"
    assert attribution["source"] == "A"
    assert attribution["first_click"]
    assert referrals.get_link("a")["users"] == [7]
    assert referrals.get_link("b")["users"] == [7]


def test_repeat_clicks_count_once_as_unique():
    referrals.create_link("A", code="a")
    referrals.track_click("a", 1)
    referrals.track_click("a", 1)
    link = referrals.get_link("a")
    assert link["clicks"] == 2
    assert link["users"] == [1]


def test_referral_stats():
    referrals.create_link("A", code="a")
    referrals.create_link("B", code="b")
    referrals.track_click("a", 1)
    referrals.track_click("b", 1)
    referrals.track_click("b", 2)
    referrals.track_click("b", 2)

    stats = referrals.referral_stats()
    assert stats["total_links"] == 2
    assert stats["total_clicks"] == 4
    assert stats["total_unique_users"] == 2
    assert [row["link_id"] for row in stats["links"]] == ["b", "a"]
    assert stats["links"][0]["unique_users"] == 2


def test_parse_start_payload():
    assert referrals.parse_start_payload("/start abc") == "abc"
    assert referrals.parse_start_payload("/start") is None
    assert referrals.parse_start_payload(None) is None


def test_deep_link():
    assert referrals.deep_link("@my_bot", "abc") == "https://t.me/my_bot?start=abc"
