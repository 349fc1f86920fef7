import pytest

from askai.safety import RiskLevel, assess, classify


@pytest.mark.parametrize(
    "command",
    [
        "rm -rf /",
        "rm -rf /*",
        "sudo rm -rf /",
        "rm -fr / ",
        "rm -r -f --no-preserve-root /",
        "dd if=/dev/zero of=/dev/sda bs=1M",
        "cat image.iso > /dev/sdb",
        "mkfs.ext4 /dev/sda1",
        ":(){ :|:& };:",
        "chmod -R 777 /",
        "rm -r -f /",
        "rm -f -r /",
        "rm --recursive --force /",
        "rm -r /",
        "sudo rm -r -f /*",
        "rm -R /",
        "cd /tmp && /bin/rm -v -r '/'",
        "rm / -rf",
    ],
)
def test_hard_blocked(command):
    assert classify(command) is RiskLevel.BLOCKED


@pytest.mark.parametrize(
    "command",
    [
        "rm -rf ./build",
        "git push --force origin main",
        "git reset --hard HEAD~1",
        "git clean -fdx",
        "kill -9 1234",
        "psql -c 'DROP TABLE users'",
        "rm --recursive --force ./dist",
        "rm --force notes.txt",
    ],
)
def test_high_risk(command):
    assert classify(command) is RiskLevel.HIGH


def test_scenarios():
    assert classify("rm -rf /") is RiskLevel.BLOCKED
    assert classify("sudo apt update") is RiskLevel.MEDIUM
    assert classify("ls -la") is RiskLevel.LOW


def test_low_risk_commands_are_not_flagged():
    for command in ("git status", "date", "find . -name '*.txt'", "docker ps", "df -h"):
        assert classify(command) is RiskLevel.LOW, command


def test_rm_of_subdirectory_is_not_blocked():
    assert classify("rm -rf /tmp/build") is RiskLevel.HIGH


def test_extra_patterns_block():
    result = assess("terraform destroy -auto-approve", extra_patterns=[r"terraform\s+destroy"])
    assert result.blocked
    assert "terraform" in result.reason


def test_assessment_carries_reason():
    result = assess("sudo systemctl restart nginx")
    assert result.level is RiskLevel.MEDIUM
    assert result.reason == "privilege escalation"
    assert not result.blocked


def test_classification_is_pure():
    assert classify("rm -rf /") is classify("rm -rf /")


def test_rm_of_root_without_recursion_is_not_blocked():
    assert classify("rm -f /") is RiskLevel.HIGH


def test_rm_root_after_end_of_options_is_an_operand_only():
    assert classify("rm -- -r /tmp/x") is not RiskLevel.BLOCKED


def test_blocked_root_deletion_reason():
    assert assess("rm --recursive /*").reason == "recursive deletion of /"
