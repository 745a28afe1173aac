__all__ = ['localdisk', 'parser', 'parse_args']

from . import localdisk
import argparse


parser = argparse.ArgumentParser(prog='cmaqsubset')
subparsers = parser.add_subparsers(
    dest='command', title='subcommands',
    description='Valid subcommands are show below:',
    help='For help on subcommands run %(prog)s subcommand -h'
)
localdisk.add_subset_parser(subparsers)

commands = dict(subset=localdisk.subset)


def parse_args(args, run=True, noexit=True):
    """
    args : list
        Like argparse.ArgumentParser.parse_args (use '-h' for more details)
    run : bool
        If True, run the commands. Otherwise simply return the kwargs.
    noexit : bool
        By default, do not exits on error. If running from CLI, noexit should
        be False
    """
    try:
        args = parser.parse_args(args)
        kwargs = vars(args)
        cmdname = kwargs.pop('command')
        if cmdname is None:
            parser.print_usage()
        else:
            if run:
                return commands[cmdname.replace('-', '_')](**kwargs)
            else:
                return kwargs
    except SystemExit as e:
        if not noexit:
            raise e
        else:
            print(repr(e))
