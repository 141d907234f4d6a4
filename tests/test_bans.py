from trackerbot import bans


def test_ban_and_unban():
    assert bans.is_banned(5) is False
    assert bans.ban(5, "spam", 1) is True
    assert bans.is_banned(5) is True
    assert bans.unban(5) is True
    assert bans.is_banned(5) is False


def test_unban_never_banned():
    assert bans.unban(99) is False


def test_ban_overwrites_previous_entry():
    bans.ban(5, "spam", 1)
    bans.ban(5, "flood", 2)
    info = bans.get_ban_info(5)
    assert info.reason == "flood"
    assert info.banned_by == 2
    assert info.banned_at


def test_get_ban_info_absent():
    assert bans.get_ban_info(5) is None


def test_all_banned():
    bans.ban(1, None, None)
    bans.ban(2, "x", 10)
    banned = bans.all_banned()
    assert set(banned) == {1, 2}
    assert banned[1].reason is None
    assert banned[2].banned_by == 10
