"""Run the in-process CLI: ``python -m forge``.

The ``forge`` console script goes through :mod:`forge.launcher`, which
re-executes this module whenever a run asks for a restart.
"""

from forge.dispatcher import main

if __name__ == "__main__":
    main()
