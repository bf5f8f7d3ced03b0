"""
CLI entry point
"""

import argparse
import asyncio
import logging
from pathlib import Path

import yaml

from ..infra.config import get_default_config, load_config, resolve_env_refs, save_config
from ..infra.groups import GROUPS_FILENAME, GroupRegistry
from .daemon import run_daemon

logger = logging.getLogger(__name__)


def _group_registry(config_path):
    config = resolve_env_refs(load_config(config_path))
    data_dir = Path(str(config.get("chatbridge", {}).get("data_dir") or "~/.chatbridge")).expanduser()
    return GroupRegistry(data_dir / GROUPS_FILENAME)


def cmd_start(args):
    """Start the bridge daemon"""
    log_level = args.log_level or str(load_config(args.config).get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    asyncio.run(run_daemon(args.config))


def cmd_config(args):
    """Config management"""
    if args.show:
        config = load_config(args.config)
        print(yaml.dump(config, default_flow_style=False, allow_unicode=True))
    elif args.init:
        config = get_default_config()
        save_config(config, args.config)
        print(f"Config initialized: {args.config or '~/.chatbridge/config.yaml'}")
    else:
        print("Use --show to print the config, --init to write defaults")


def cmd_groups(args):
    """Registered group management"""
    registry = _group_registry(args.config)
    if args.groups_command == "add":
        group = registry.register(
            args.jid,
            args.name,
            folder=args.folder or "",
            trigger=args.trigger or "",
            requires_trigger=not args.no_trigger,
        )
        print(f"Registered {args.jid} ({group.name}, folder={group.folder})")
    elif args.groups_command == "remove":
        if registry.unregister(args.jid):
            print(f"Removed {args.jid}")
        else:
            print(f"Not registered: {args.jid}")
    else:
        groups = registry.load()
        if not groups:
            print("No registered groups")
            return
        print(f"{len(groups)} registered group(s):")
        for jid, group in sorted(groups.items()):
            trigger = "trigger" if group.requires_trigger else "no trigger"
            print(f"  - {jid}: {group.name} [{group.folder}] ({trigger})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="chatbridge - multi-channel chat bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--config", type=str, help="config file path")
    parser.add_argument("--log-level", type=str,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="log level")

    subparsers = parser.add_subparsers(dest="command", help="subcommands")

    parser_start = subparsers.add_parser("start", help="start the bridge daemon")
    parser_start.set_defaults(func=cmd_start)

    parser_config = subparsers.add_parser("config", help="config management")
    parser_config.add_argument("--show", action="store_true", help="print the current config")
    parser_config.add_argument("--init", action="store_true", help="write the default config")
    parser_config.set_defaults(func=cmd_config)

    parser_groups = subparsers.add_parser("groups", help="registered group management")
    groups_sub = parser_groups.add_subparsers(dest="groups_command")
    groups_sub.add_parser("list", help="list registered groups")
    parser_add = groups_sub.add_parser("add", help="register a chat")
    parser_add.add_argument("jid", help="chat JID, e.g. lark:oc_xxx")
    parser_add.add_argument("name", help="display name")
    parser_add.add_argument("folder", nargs="?", help="agent workspace folder (defaults to name)")
    parser_add.add_argument("--trigger", type=str, help="trigger word")
    parser_add.add_argument("--no-trigger", action="store_true", help="respond without a trigger")
    parser_remove = groups_sub.add_parser("remove", help="unregister a chat")
    parser_remove.add_argument("jid", help="chat JID")
    parser_groups.set_defaults(func=cmd_groups)

    return parser


def main(argv=None):
    """CLI main entry"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
