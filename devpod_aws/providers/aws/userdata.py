"""Cloud-init user data that authorizes the machine's SSH key."""

import base64

from devpod_aws.constants import SSH_USERNAME

_INJECT_KEYPAIR_TEMPLATE = """#!/bin/sh
useradd {user} -d /home/{user} -s /bin/bash
mkdir -p /home/{user}
if grep -q sudo /etc/group; then
  usermod -aG sudo {user}
elif grep -q wheel /etc/group; then
  usermod -aG wheel {user}
fi
echo "{user} ALL=(ALL) NOPASSWD:ALL" > /etc/sudoers.d/91-{user}
mkdir -p /home/{user}/.ssh
echo "{public_key}" >> /home/{user}/.ssh/authorized_keys
chmod 0700 /home/{user}/.ssh
chmod 0600 /home/{user}/.ssh/authorized_keys
chown -R {user}:{user} /home/{user}
"""


def render_inject_keypair_script(public_key: str, user: str = SSH_USERNAME) -> str:
    """Return the shell script creating ``user`` with ``public_key`` authorized."""
    return _INJECT_KEYPAIR_TEMPLATE.format(user=user, public_key=public_key.strip())


def build_user_data(public_key: str) -> str:
    """Return base64 encoded user data for a spot launch specification.

    botocore encodes ``UserData`` for ``run_instances`` on its own but not for
    ``request_spot_instances``, which takes the encoded form.
    """
    script = render_inject_keypair_script(public_key)
    return base64.b64encode(script.encode("utf-8")).decode("ascii")
