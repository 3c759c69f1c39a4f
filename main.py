"""CLI entry point for the relief matching engine."""

import argparse
import json
import logging
import sys
from contextlib import closing
from pathlib import Path
from typing import Any

import yaml

from relief_matching.core.config import Settings
from relief_matching.core.db import init_db, upsert_profile
from relief_matching.core.errors import MatchingError
from relief_matching.core.schemas import (
    CandidateProfile,
    FindCandidatesOptions,
    MissionStatus,
)
from relief_matching.geo.geocoder import GeoResolver
from relief_matching.matching.finder import CandidateFinder
from relief_matching.matching.repository import SqliteCandidatePool, SqliteMissionStore
from relief_matching.missions.lifecycle import MissionLifecycle
from relief_matching.missions.service import MissionService

DEFAULT_CONFIG = "config/settings.yaml"

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG})",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    parser = argparse.ArgumentParser(
        description="Relief matching engine - geo-ranked candidate search for urgent missions",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", parents=[common], help="Create the database tables")

    load_parser = subparsers.add_parser(
        "load-profiles", parents=[common], help="Insert or update candidate profiles from YAML",
    )
    load_parser.add_argument("--file", required=True, help="YAML list of profiles")

    create_parser = subparsers.add_parser(
        "create-mission", parents=[common], help="Create a mission from a YAML payload",
    )
    create_parser.add_argument("--file", required=True, help="YAML mission payload")
    create_parser.add_argument("--client-id", required=True, help="Requesting client account ID")

    find_parser = subparsers.add_parser(
        "find-candidates", parents=[common], help="Rank nearby candidates for a mission",
    )
    find_parser.add_argument("mission_id")
    find_parser.add_argument(
        "--skill",
        action="append",
        dest="skills",
        help="Skill to match (repeatable). Defaults to the mission's required skills",
    )
    find_parser.add_argument("--radius", type=float, help="Search radius in km (1-200)")
    find_parser.add_argument("--limit", type=int, help="Maximum candidates shown (1-50)")
    find_parser.add_argument(
        "--record",
        action="store_true",
        help="Store the number of candidates found on the mission",
    )

    geocode_parser = subparsers.add_parser(
        "geocode", parents=[common], help="Geocode an address and print the best match",
    )
    geocode_parser.add_argument("address")

    apply_parser = subparsers.add_parser(
        "apply", parents=[common], help="Apply to an open mission on behalf of a profile",
    )
    apply_parser.add_argument("mission_id")
    apply_parser.add_argument("profile_id")
    apply_parser.add_argument("--cover-letter")
    apply_parser.add_argument("--rate", type=float, help="Proposed hourly rate")

    assign_parser = subparsers.add_parser(
        "assign", parents=[common], help="Assign an open mission to a profile",
    )
    assign_parser.add_argument("mission_id")
    assign_parser.add_argument("profile_id")
    assign_parser.add_argument("--application-id")

    cancel_parser = subparsers.add_parser(
        "cancel", parents=[common], help="Cancel an open mission",
    )
    cancel_parser.add_argument("mission_id")

    subparsers.add_parser(
        "expire-overdue", parents=[common], help="Expire open missions whose start date passed",
    )

    list_parser = subparsers.add_parser(
        "list-missions", parents=[common], help="List missions, optionally by status",
    )
    list_parser.add_argument(
        "--status",
        choices=[s.value for s in MissionStatus],
        help="Only missions with this status (e.g. OPEN for active missions)",
    )

    show_parser = subparsers.add_parser(
        "show-mission", parents=[common], help="Show a mission and its applications",
    )
    show_parser.add_argument("mission_id")

    reject_parser = subparsers.add_parser(
        "reject-application", parents=[common], help="Decline a pending application",
    )
    reject_parser.add_argument("application_id")

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str) -> Settings:
    """Load settings; the default path may be absent, in which case defaults apply."""
    if path == DEFAULT_CONFIG and not Path(path).exists():
        logger.debug("No %s found - using default settings", path)
        return Settings()
    return Settings.from_yaml(path)


def _read_yaml(path: str) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        msg = f"File not found: {file_path}"
        raise FileNotFoundError(msg)
    return yaml.safe_load(file_path.read_text())


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_load_profiles(args: argparse.Namespace, settings: Settings) -> None:
    raw = _read_yaml(args.file) or []
    if isinstance(raw, dict):
        raw = raw.get("profiles", [])
    profiles = [CandidateProfile.model_validate(p) for p in raw]

    with closing(init_db(settings.database.path)) as conn:
        inserted = sum(1 for p in profiles if upsert_profile(conn, p))
    print(f"Loaded {len(profiles)} profiles ({inserted} new, {len(profiles) - inserted} updated)")


def cmd_create_mission(args: argparse.Namespace, settings: Settings) -> None:
    payload = _read_yaml(args.file) or {}
    with closing(init_db(settings.database.path)) as conn, GeoResolver(settings.geocoding) as geo:
        service = MissionService(conn, geo, settings.missions)
        mission = service.create_mission(payload, client_id=args.client_id)
    _print_json(mission.model_dump(mode="json"))


def cmd_find_candidates(args: argparse.Namespace, settings: Settings) -> None:
    options = FindCandidatesOptions(skills=args.skills, radius_km=args.radius, limit=args.limit)
    with closing(init_db(settings.database.path)) as conn, GeoResolver(settings.geocoding) as geo:
        finder = CandidateFinder(
            SqliteMissionStore(conn),
            SqliteCandidatePool(conn),
            settings.matching,
            settings.scoring,
            geo=geo,
        )
        result = finder.find_candidates(args.mission_id, options)
        if args.record:
            MissionLifecycle(conn).record_candidates_found(args.mission_id, result)
    _print_json(result.to_dict())


def cmd_geocode(args: argparse.Namespace, settings: Settings) -> None:
    with GeoResolver(settings.geocoding) as geo:
        result = geo.geocode_address(args.address)
    if result is None:
        print("No result")
        return
    _print_json(result.model_dump())


def cmd_apply(args: argparse.Namespace, settings: Settings) -> None:
    with closing(init_db(settings.database.path)) as conn:
        application = MissionService(conn, defaults=settings.missions).apply_to_mission(
            args.mission_id, args.profile_id, args.cover_letter, args.rate,
        )
    _print_json(application.model_dump(mode="json"))


def cmd_assign(args: argparse.Namespace, settings: Settings) -> None:
    with closing(init_db(settings.database.path)) as conn:
        event = MissionLifecycle(conn).assign(
            args.mission_id, args.profile_id, args.application_id,
        )
    _print_json(event.model_dump(mode="json"))


def cmd_cancel(args: argparse.Namespace, settings: Settings) -> None:
    with closing(init_db(settings.database.path)) as conn:
        mission = MissionLifecycle(conn).cancel(args.mission_id)
    print(f"Mission {mission.id}: {mission.status.value}")


def cmd_expire_overdue(args: argparse.Namespace, settings: Settings) -> None:
    with closing(init_db(settings.database.path)) as conn:
        expired = MissionLifecycle(conn).expire_overdue()
    print(f"Expired {len(expired)} missions")
    for mission_id in expired:
        print(f"  {mission_id}")


def cmd_list_missions(args: argparse.Namespace, settings: Settings) -> None:
    status = MissionStatus(args.status) if args.status else None
    with closing(init_db(settings.database.path)) as conn:
        missions = MissionService(conn).list_missions(status)
    if not missions:
        print("No missions")
        return
    for m in missions:
        print(f"{m.id}  {m.status.value:<9}  {m.start_date:%Y-%m-%d %H:%M}  {m.title} ({m.city})")


def cmd_show_mission(args: argparse.Namespace, settings: Settings) -> None:
    with closing(init_db(settings.database.path)) as conn:
        mission, applications = MissionService(conn).get_mission_with_applications(
            args.mission_id,
        )
    data = mission.model_dump(mode="json")
    data["applications"] = [a.model_dump(mode="json") for a in applications]
    _print_json(data)


def cmd_reject_application(args: argparse.Namespace, settings: Settings) -> None:
    with closing(init_db(settings.database.path)) as conn:
        application = MissionService(conn).reject_application(args.application_id)
    print(f"Application {application.id}: {application.status.value}")


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    with closing(init_db(settings.database.path)):
        pass
    print(f"Database ready at {settings.database.path}")


_COMMANDS = {
    "init-db": cmd_init_db,
    "load-profiles": cmd_load_profiles,
    "create-mission": cmd_create_mission,
    "find-candidates": cmd_find_candidates,
    "geocode": cmd_geocode,
    "apply": cmd_apply,
    "assign": cmd_assign,
    "cancel": cmd_cancel,
    "expire-overdue": cmd_expire_overdue,
    "list-missions": cmd_list_missions,
    "show-mission": cmd_show_mission,
    "reject-application": cmd_reject_application,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        _COMMANDS[args.command](args, settings)
    except (MatchingError, FileNotFoundError, ValueError) as e:
        # pydantic.ValidationError is a ValueError; its message lists each bad field.
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
