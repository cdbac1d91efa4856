#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Console script for ecs_scheduler.
"""

import argparse
import sys

from tabulate import tabulate

from ecs_scheduler.app_definition import load_app_file
from ecs_scheduler.common.context import RequestContext
from ecs_scheduler.common.logging import LOG, set_log_level
from ecs_scheduler.common.settings import SchedulerSettings
from ecs_scheduler.ecs.ecs_scheduler import new_load_balanced_scheduler, new_scheduler
from ecs_scheduler.exceptions import SchedulerBaseException
from ecs_scheduler.logs import new_logs_streamer

COMMAND_ARG = "command"
COMMANDS = [
    {"name": "submit", "help": "Creates or updates the App processes from a file"},
    {"name": "remove", "help": "Removes all the processes of the App"},
    {"name": "processes", "help": "Lists the processes of the App"},
    {"name": "instances", "help": "Lists the running instances of the App"},
    {"name": "scale", "help": "Sets the number of instances of a process"},
    {"name": "stop", "help": "Stops an instance"},
    {"name": "logs", "help": "Streams the logs of the App"},
]


class ArgparseHelper(argparse._HelpAction):
    """
    Used to help print top level '--help' arguments from argparse
    when used with subparsers
    """

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_help()
        print()
        subparsers_actions = [
            action
            for action in parser._actions
            if isinstance(action, argparse._SubParsersAction)
        ]
        for subparsers_action in subparsers_actions:
            for choice, subparser in list(subparsers_action.choices.items()):
                print(f"Command '{choice}'")
                print(subparser.format_usage())
        parser.exit()


def main_parser():
    """
    Console script for ecs_scheduler.
    """
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-h",
        "--help",
        action=ArgparseHelper,
        help="show this help message and exit",
    )
    cmd_parsers = parser.add_subparsers(dest=COMMAND_ARG, help="Command to execute.")
    base_command_parser = argparse.ArgumentParser(add_help=False)
    base_command_parser.add_argument(
        "-c",
        "--config",
        required=False,
        dest="ConfigFile",
        help="Path to a YAML file with the scheduler settings. "
        "Defaults to the ECS_SCHEDULER_* environment variables",
    )
    base_command_parser.add_argument(
        "--cluster",
        required=False,
        dest=SchedulerSettings.cluster_arg,
        help="Name of the ECS cluster",
    )
    base_command_parser.add_argument(
        "--region",
        required=False,
        dest=SchedulerSettings.region_arg,
        help="Specify the region to use. "
        "default use default region from config or environment vars",
    )
    base_command_parser.add_argument(
        "--profile",
        required=False,
        dest=SchedulerSettings.profile_arg,
        help="AWS profile to use",
    )
    base_command_parser.add_argument(
        "--role-arn",
        dest=SchedulerSettings.arn_arg,
        help="Allow you to run API calls using a specific IAM role, within same or for cross-account",
        required=False,
    )
    base_command_parser.add_argument(
        "--load-balanced",
        dest="LoadBalanced",
        action="store_true",
        default=False,
        help="Creates an ELB and CNAME record for the processes with ports",
    )
    base_command_parser.add_argument(
        "--timeout",
        dest="Timeout",
        type=float,
        required=False,
        help="Maximum time in seconds for listing operations and logs streaming",
    )
    base_command_parser.add_argument(
        "--loglevel", type=str, help="Log level. Defaults to INFO", required=False
    )
    app_parser = argparse.ArgumentParser(add_help=False)
    app_parser.add_argument("app_id", help="ID of the App")

    commands = {command["name"]: command["help"] for command in COMMANDS}
    submit_parser = cmd_parsers.add_parser(
        name="submit", help=commands["submit"], parents=[base_command_parser]
    )
    submit_parser.add_argument(
        "-f",
        "--file",
        dest="AppFile",
        required=True,
        help="Path to the App definition file",
    )
    for command in ["remove", "processes", "instances", "logs"]:
        cmd_parsers.add_parser(
            name=command,
            help=commands[command],
            parents=[base_command_parser, app_parser],
        )
    scale_parser = cmd_parsers.add_parser(
        name="scale", help=commands["scale"], parents=[base_command_parser, app_parser]
    )
    scale_parser.add_argument("process_type", help="Type of the process, i.e. web")
    scale_parser.add_argument("instances", type=int, help="Number of instances")
    stop_parser = cmd_parsers.add_parser(
        name="stop", help=commands["stop"], parents=[base_command_parser]
    )
    stop_parser.add_argument("instance_id", help="ID of the instance (task)")
    return parser


def settings_from_args(args) -> SchedulerSettings:
    settings_args = {
        key: value
        for key, value in vars(args).items()
        if key
        in [
            SchedulerSettings.cluster_arg,
            SchedulerSettings.region_arg,
            SchedulerSettings.profile_arg,
            SchedulerSettings.arn_arg,
        ]
    }
    if args.ConfigFile:
        return SchedulerSettings.from_file(args.ConfigFile, **settings_args)
    return SchedulerSettings.from_environment(**settings_args)


def print_processes(processes: list) -> None:
    print(
        tabulate(
            [
                [
                    process.type,
                    process.instances,
                    process.image,
                    process.command,
                    ",".join(
                        f"{port.host}:{port.container}" for port in process.ports
                    ),
                    process.load_balancer or "",
                ]
                for process in processes
            ],
            ["Type", "Instances", "Image", "Command", "Ports", "LoadBalancer"],
            tablefmt="rst",
        )
    )


def print_instances(instances: list) -> None:
    print(
        tabulate(
            [
                [instance.id, instance.process.type, instance.state]
                for instance in instances
            ],
            ["ID", "Type", "State"],
            tablefmt="rst",
        )
    )


def run_command(args, settings: SchedulerSettings) -> int:
    ctx = RequestContext(timeout=args.Timeout)
    command = getattr(args, COMMAND_ARG)
    if command == "logs":
        new_logs_streamer(settings).stream_logs(args.app_id, sys.stdout, ctx=ctx)
        return 0
    if args.LoadBalanced:
        scheduler = new_load_balanced_scheduler(settings)
    else:
        scheduler = new_scheduler(settings)
    if command == "submit":
        scheduler.submit(load_app_file(args.AppFile), ctx=ctx)
    elif command == "remove":
        scheduler.remove(args.app_id, ctx=ctx)
    elif command == "processes":
        print_processes(scheduler.processes(args.app_id, ctx=ctx))
    elif command == "instances":
        print_instances(scheduler.instances(args.app_id, ctx=ctx))
    elif command == "scale":
        scheduler.scale(args.app_id, args.process_type, args.instances)
    elif command == "stop":
        scheduler.stop(args.instance_id)
    return 0


def main():
    """
    Main entry point for CLI
    :return: status code
    """
    parser = main_parser()
    if len(sys.argv) == 1:
        parser.print_help()
        sys.exit()
    args = parser.parse_args()
    if args.loglevel:
        try:
            set_log_level(args.loglevel)
        except ValueError as error:
            print(error)
    LOG.debug(args)
    settings = settings_from_args(args)
    LOG.debug(settings)
    try:
        return run_command(args, settings)
    except SchedulerBaseException as error:
        LOG.error(error)
        return 1


if __name__ == "__main__":
    sys.exit(main())  # pragma: no cover
