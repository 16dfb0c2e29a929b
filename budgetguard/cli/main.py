"""
Main CLI entry point for budgetguard.
"""

import click

from budgetguard import __version__
from budgetguard.cli.check import check
from budgetguard.cli.server import health, reconcile, serve


@click.group()
@click.version_option(version=__version__, prog_name="budgetguard")
def main() -> None:
    """
    budgetguard - admission-time resource budgets for Kubernetes teams

    Rejects or shrinks pods whose CPU and memory limits would push a team
    past its ProjectBudget.
    """
    pass


main.add_command(serve)
main.add_command(health)
main.add_command(reconcile)
main.add_command(check)


if __name__ == "__main__":
    main()
