from secureupdate.core.models import IssueSeverity
from secureupdate.core.postupdate import clean_command, extract_issues, summarize_issues


def test_single_complete_issue():
    text = (
        "Analysis of the update:\n"
        "SEVERITY: HIGH\n"
        "PROBLEM: NetworkManager failed to start\n"
        "IMPACT: no network after reboot\n"
        "FIX_COMMANDS:\n"
        "  sudo systemctl daemon-reload\n"
        "  sudo systemctl restart NetworkManager\n"
        "END_ISSUE\n"
    )
    issues = extract_issues(text)
    assert len(issues) == 1
    issue = issues[0]
    assert issue.severity == IssueSeverity.HIGH
    assert issue.problem == "NetworkManager failed to start"
    assert issue.impact == "no network after reboot"
    assert issue.fix_commands == [
        "sudo systemctl daemon-reload",
        "sudo systemctl restart NetworkManager",
    ]


def test_block_without_commands_yields_nothing():
    assert extract_issues("SEVERITY: HIGH\nEND_ISSUE\n") == []
    assert extract_issues("SEVERITY: HIGH\nPROBLEM: x\nFIX_COMMANDS:\nEND_ISSUE\n") == []


def test_block_without_problem_yields_nothing():
    assert extract_issues("SEVERITY: LOW\nFIX_COMMANDS:\nsudo pacman -Sc\nEND_ISSUE\n") == []


def test_severity_implicitly_closes_previous_block():
    text = (
        "SEVERITY: CRITICAL\n"
        "PROBLEM: kernel modules missing\n"
        "FIX_COMMANDS:\n"
        "sudo mkinitcpio -P\n"
        "SEVERITY: LOW\n"
        "PROBLEM: pacnew files pending\n"
        "FIX_COMMANDS:\n"
        "sudo pacdiff\n"
        "END_ISSUE\n"
    )
    issues = extract_issues(text)
    assert [i.severity for i in issues] == [IssueSeverity.CRITICAL, IssueSeverity.LOW]
    assert issues[0].fix_commands == ["sudo mkinitcpio -P"]
    assert issues[1].fix_commands == ["sudo pacdiff"]


def test_unterminated_block_at_end_of_input_is_kept():
    issues = extract_issues("SEVERITY: MEDIUM\nPROBLEM: orphans\nFIX_COMMANDS:\nsudo pacman -Rns foo\n")
    assert len(issues) == 1


def test_lines_outside_blocks_are_ignored():
    text = (
        "sudo rm -rf /\n"
        "PROBLEM: stray\n"
        "FIX_COMMANDS:\n"
        "echo nope\n"
        "SEVERITY: LOW\n"
        "PROBLEM: cache is large\n"
        "FIX_COMMANDS:\n"
        "paccache -r\n"
        "END_ISSUE\n"
        "echo after\n"
    )
    issues = extract_issues(text)
    assert len(issues) == 1
    assert issues[0].fix_commands == ["paccache -r"]


def test_text_before_fix_commands_is_not_a_command():
    text = (
        "SEVERITY: HIGH\n"
        "PROBLEM: display manager crash\n"
        "the log shows a segfault in libfoo\n"
        "FIX_COMMANDS:\n"
        "sudo pacman -S libfoo\n"
        "END_ISSUE\n"
    )
    assert extract_issues(text)[0].fix_commands == ["sudo pacman -S libfoo"]


def test_markdown_fences_and_prompts_are_stripped():
    text = (
        "SEVERITY: MEDIUM\n"
        "PROBLEM: service masked\n"
        "FIX_COMMANDS:\n"
        "```bash\n"
        "# unmask first\n"
        "$ sudo systemctl unmask foo\n"
        "- sudo systemctl start foo\n"
        "```\n"
        "END_ISSUE\n"
    )
    assert extract_issues(text)[0].fix_commands == ["sudo systemctl unmask foo", "sudo systemctl start foo"]


def test_unknown_severity_defaults_to_medium():
    issues = extract_issues("SEVERITY: urgent\nPROBLEM: p\nFIX_COMMANDS:\ntrue\nEND_ISSUE\n")
    assert issues[0].severity == IssueSeverity.MEDIUM


def test_clean_command():
    assert clean_command("  `sudo pacman -Syu`  ") == "sudo pacman -Syu"
    assert clean_command("```") is None
    assert clean_command("") is None


def test_numbered_commands_lose_their_list_prefix():
    text = (
        "SEVERITY: HIGH\n"
        "PROBLEM: foo.service failed\n"
        "FIX_COMMANDS:\n"
        "1. sudo systemctl restart foo\n"
        "2) `sudo systemctl enable foo`\n"
        "END_ISSUE\n"
    )
    assert extract_issues(text)[0].fix_commands == ["sudo systemctl restart foo", "sudo systemctl enable foo"]
    assert clean_command("2>/dev/null true") == "2>/dev/null true"


def test_summarize_issues_counts_by_severity():
    issues = extract_issues(
        "SEVERITY: HIGH\nPROBLEM: a\nFIX_COMMANDS:\ntrue\nEND_ISSUE\n"
        "SEVERITY: HIGH\nPROBLEM: b\nFIX_COMMANDS:\ntrue\nEND_ISSUE\n"
    )
    assert summarize_issues(issues) == {"CRITICAL": 0, "HIGH": 2, "MEDIUM": 0, "LOW": 0}
