import re

# Commands that are never executed, whether from a step or a verification check
DANGEROUS_COMMAND_PATTERNS = [
    r"rm\s+-rf\s+/(\s|$)",  # rm -rf /
    r"rm\s+-rf\s+~",  # rm -rf ~
    r"rm\s+-rf\s+\*",  # rm -rf *
    r"mkfs\.",  # filesystem format
    r"dd\s+if=.*of=/dev/",  # disk overwrite
    r">\s*/dev/sd",  # overwrite disk
    r"curl.*\|\s*(ba)?sh",  # curl pipe to shell
    r"wget.*\|\s*(ba)?sh",  # wget pipe to shell
    r":\(\)\s*\{\s*:\|:&\s*\};:",  # fork bomb
]


def find_dangerous_pattern(command: str) -> str | None:
    """Return the first dangerous pattern ``command`` matches, if any."""
    for pattern in DANGEROUS_COMMAND_PATTERNS:
        if re.search(pattern, command, re.IGNORECASE):
            return pattern
    return None
