from __future__ import annotations

from ..tools.base import ParamSpec
from .models import FailurePolicy, Skill, Step
from .registry import SkillRegistry

SETTINGS = "com.android.settings"
PLAY_STORE = "com.android.vending"
YOUTUBE = "com.google.android.youtube"
MAPS = "com.google.android.apps.maps"

CONTINUE = FailurePolicy.CONTINUE


def _default_skills() -> list[Skill]:
    return [
        Skill(
            name="open_settings",
            description="Open the system Settings app.",
            steps=(Step("launch_app", {"package": SETTINGS}),),
            required_apps=frozenset({SETTINGS}),
        ),
        Skill(
            name="open_wifi_settings",
            description="Jump straight to the Wi-Fi settings page.",
            steps=(Step("shell", {"command": "am start -a android.settings.WIFI_SETTINGS"}),),
            required_apps=frozenset({SETTINGS}),
        ),
        Skill(
            name="go_home",
            description="Back out of the current screen and return to the launcher.",
            steps=(
                Step("back", on_failure=CONTINUE),
                Step("back", on_failure=CONTINUE),
                Step("home"),
            ),
        ),
        Skill(
            name="capture_screen",
            description="Save a screenshot of the current screen to the cache directory.",
            steps=(Step("screenshot"),),
        ),
        Skill(
            name="browser_open",
            description="Open a web page in the default browser.",
            steps=(Step("open_uri", {"uri": "{{url}}"}),),
            parameters=(ParamSpec("url", "str", "http(s) URL to open."),),
        ),
        Skill(
            name="play_store_page",
            description="Show an app's Play Store listing.",
            steps=(Step("open_uri", {"uri": "market://details?id={{package|url}}"}),),
            required_apps=frozenset({PLAY_STORE}),
            parameters=(ParamSpec("package", "str", "Package id of the listing."),),
        ),
        Skill(
            name="youtube_search",
            description="Search YouTube in the YouTube app.",
            steps=(
                Step("launch_app", {"package": YOUTUBE}),
                Step("wait", {"seconds": 1.5}, on_failure=CONTINUE),
                Step("open_uri", {"uri": "https://www.youtube.com/results?search_query={{query|url}}"}),
            ),
            required_apps=frozenset({YOUTUBE}),
            parameters=(ParamSpec("query", "str", "Search terms."),),
        ),
        Skill(
            name="maps_navigate",
            description="Start turn-by-turn navigation in Google Maps.",
            steps=(Step("open_uri", {"uri": "google.navigation:q={{destination|url}}&mode={{mode|url}}"}),),
            required_apps=frozenset({MAPS}),
            parameters=(
                ParamSpec("destination", "str", "Address or place name."),
                ParamSpec("mode", "str", "d (drive), w (walk), b (bike) or l (two-wheeler).", default="d"),
            ),
        ),
    ]


def register_builtin_skills(registry: SkillRegistry) -> None:
    for skill in _default_skills():
        registry.register(skill)
