"""示例工具：当前时间、指定时区时间与闹钟。"""

from datetime import datetime, timedelta
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .definitions import ToolCallback, tool

CURRENT_DATETIME_TOOL = "get_current_time_in"


@tool(description="Get the current date and time in the local timezone.")
def get_current_date_time() -> str:
    return datetime.now().astimezone().isoformat()


@tool(
    name=CURRENT_DATETIME_TOOL,
    description="Get the current local time for a given location.",
    param_descriptions={"location": "IANA time zone, e.g. 'Asia/Seoul', 'America/New_York'"},
)
def get_current_time_in(location: str) -> str:
    try:
        zone = ZoneInfo(location)
    except (ZoneInfoNotFoundError, ValueError):
        return f"Unknown time zone: {location}"
    return datetime.now(zone).isoformat()


@tool(
    description="Set an alarm the given number of minutes from now.",
    param_descriptions={"minutes": "Minutes from now"},
)
def set_alarm(minutes: int) -> str:
    alarm_at = datetime.now().astimezone() + timedelta(minutes=int(minutes))
    return f"Alarm set for {alarm_at.isoformat()}"


def datetime_tools() -> List[ToolCallback]:
    return [get_current_date_time, get_current_time_in, set_alarm]
