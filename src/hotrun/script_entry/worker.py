"""
This is a minimal entry point script for the worker process.

Its sole responsibility is to name the process and hand the inherited
control connection to the worker startup sequence, which then runs the
user's program in this process.
"""
import setproctitle
setproctitle.setproctitle("hotrun - Worker")

import sys
from hotrun.worker import run_worker


if __name__ == "__main__":
    run_worker(int(sys.argv[1]))
