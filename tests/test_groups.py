from trackerbot import groups


def test_save_and_track():
    assert groups.get_group(-100) is None
    assert groups.is_tracked(-100) is False
    assert groups.save_group(-100, "Chat", "supergroup") is True
    rec = groups.get_group(-100)
    assert rec["title"] == "Chat"
    assert rec["type"] == "supergroup"
    assert rec["added_at"]
    assert groups.is_tracked(-100)


def test_update_keeps_added_at():
    groups.save_group(-100, "Chat", "group")
    added_at = groups.get_group(-100)["added_at"]
    groups.save_group(-100, "Renamed", "supergroup")
    rec = groups.get_group(-100)
    assert rec["title"] == "Renamed"
    assert rec["added_at"] == added_at


def test_mark_left_keeps_record():
    assert groups.mark_left(-100) is False
    groups.save_group(-100, "Chat", "group")
    assert groups.mark_left(-100) is True
    assert groups.is_tracked(-100) is False
    assert "-100" in groups.all_groups()

    groups.save_group(-100, "Chat", "group")
    assert groups.is_tracked(-100)
