"""Signal helpers shared by the installer, resolver and supervisor.

Children are launched in their own session, so the PID is also the
process group id and one killpg reaches npm and everything it forked.
"""

import os
import signal

import psutil


def send_signal(pid: int, sig: signal.Signals, *, group: bool = True) -> bool:
    """Signal ``pid`` (and its group when it leads one).

    Returns False when the process is already gone.
    """
    if pid <= 0:
        return False

    if group and os.name == "posix":
        try:
            if os.getpgid(pid) == pid:
                os.killpg(pid, sig)
                return True
        except ProcessLookupError:
            return False
        except PermissionError:
            pass

    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    return True


def pid_alive(pid: int) -> bool:
    """True while ``pid`` exists and is not a zombie."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return psutil.pid_exists(pid)


def signal_group(pgid: int, sig: signal.Signals) -> bool:
    """Signal a whole process group, even after its leader has exited.

    Falls back to signalling the single PID where process groups are
    unavailable. Returns False when nothing was left to signal.
    """
    if pgid <= 0:
        return False
    try:
        if os.name == "posix":
            os.killpg(pgid, sig)
        else:
            os.kill(pgid, sig)
    except ProcessLookupError:
        return False
    return True
