#
# Copyright 2024 apkgo Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

import os
import subprocess
import time
from threading import Timer

# no timeout unless the caller asks for one
DEFAULT_TIMEOUT_SECOND = None


def format_command(command):
    if isinstance(command, str):
        return command
    return " ".join(f'"{x}"' if " " in str(x) else str(x) for x in command)


def exec_command(command, cwd=None, env=None, timeout_second=DEFAULT_TIMEOUT_SECOND):
    """
    Run an external tool and capture its combined stdout/stderr.

    Args:
        command: argument list (preferred) or a shell string
        cwd: working directory for the child
        env: complete environment for the child, None inherits ours
        timeout_second: kill the child after this many seconds, None waits forever

    Returns:
        tuple: (exit_code, output_text)
    """
    start_mills = int(time.time() * 1000)
    compile_popen = subprocess.Popen(
        command,
        shell=isinstance(command, str),
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )
    timer = None
    if timeout_second:
        timer = Timer(timeout_second, lambda process: process.kill(), [compile_popen])
    try:
        if timer:
            timer.start()
        stdout, _ = compile_popen.communicate()
    finally:
        if timer:
            timer.cancel()
    err_code = compile_popen.returncode
    err_msg = bytes.decode(stdout or b"", "UTF-8", errors="replace")
    if err_code == -9 and not err_msg:
        use_time = int(time.time() * 1000) - start_mills
        err_msg = f"Failed for timeout({err_code}), use_time: {use_time}ms"
    return err_code, err_msg


def exec_command_streaming(command, cwd=None, env=None):
    """Run a long-lived tool (adb logcat) with output going straight to our terminal."""
    return subprocess.call(command, cwd=cwd, env=env)


def child_env(overlay):
    """Copy of the current process environment with ``overlay`` applied on top."""
    env = dict(os.environ)
    env.update({k: str(v) for k, v in overlay.items()})
    return env
