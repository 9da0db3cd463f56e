import pytest

from slackline.profile import PROFILE_DETAILS_JS, ProfileReader


async def _yes():
    return True


async def _no():
    return False


@pytest.mark.asyncio
async def test_logged_out_profile_has_only_url(fake_page):
    profile = await ProfileReader(fake_page, _no).read()

    assert profile.to_dict() == {"logged_in": False, "url": fake_page.url}


@pytest.mark.asyncio
async def test_logged_in_profile_reads_name_and_workspace(fake_page):
    fake_page.evaluate_results[PROFILE_DETAILS_JS] = {
        "userLabel": "User: Ada Lovelace",
        "searchButtonText": "Search Acme Corp",
        "searchButtonAria": "",
        "title": "general - Acme Corp - Slack",
    }

    profile = await ProfileReader(fake_page, _yes).read()

    assert profile.logged_in
    assert profile.name == "Ada Lovelace"
    assert profile.workspace == "Acme Corp"
