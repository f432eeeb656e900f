"""
h3stack Command-Line Interface entry point.

Provides the main() function that serves as the entry point for the
`h3stack` command. Handles argument parsing, command dispatch, and
interrupts.

The first Ctrl-C requests cancellation: the running stage finishes and the
pipeline stops at the next stage boundary. A second Ctrl-C aborts at once.
"""

import signal
import sys

from h3stack.build.cancellation import CancellationToken


def install_interrupt_handler(token: CancellationToken) -> None:
    """Route the first SIGINT to ``token``; restore the default for the second."""

    def _handler(signum, frame):
        if token.cancelled:
            raise KeyboardInterrupt
        token.cancel("interrupted by user")
        signal.signal(signal.SIGINT, signal.default_int_handler)
        print(
            "\n⚠️  Cancelling after the current stage (press Ctrl-C again to abort)",
            file=sys.stderr,
        )

    signal.signal(signal.SIGINT, _handler)


def main(argv=None):
    """
    Main entry point for h3stack CLI.

    Args:
        argv: Argument list for testing; defaults to sys.argv
    """
    from h3stack.cli.argument_parser import CLIParser
    from h3stack.cli.commands import BaseCommand
    from h3stack.core.exceptions import H3StackError

    try:
        parser = CLIParser()
        args = parser.parse_args(argv)

        token = CancellationToken()
        BaseCommand.set_cancellation_token(token)
        install_interrupt_handler(token)

        if hasattr(args, 'func'):
            return args.func(args)
        else:
            parser.parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user", file=sys.stderr)
        return 130
    except H3StackError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGINT, signal.default_int_handler)


if __name__ == "__main__":
    sys.exit(main())
