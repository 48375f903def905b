"""
Base class for the subcommands of the operator entrypoint
"""

# Standard
import abc
import argparse


class CmdBase(abc.ABC):
    """A subcommand of the entrypoint. Subclasses set a name, declare their
    arguments and implement cmd. The class docstring is the command's help.
    """

    # Name of the subcommand on the command line
    name: str = ""

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Register the command with the main parser and bind cmd as the
        function to run when it is chosen

        Args:
            subparsers:  argparse._SubParsersAction
                The subcommand section of the main parser

        Returns:
            parser:  argparse.ArgumentParser
                The command's own parser
        """
        assert self.name, f"{type(self).__name__} does not set a command name"
        summary = (type(self).__doc__ or "").strip().split("\n")[0]
        parser = subparsers.add_parser(self.name, help=summary, description=summary)
        self.add_args(parser)
        parser.set_defaults(func=self.cmd)
        return parser

    @abc.abstractmethod
    def add_args(self, parser: argparse.ArgumentParser):
        """Add the arguments that belong to this command"""

    @abc.abstractmethod
    def cmd(self, args: argparse.Namespace):
        """Run the command with the parsed arguments"""
