#!/usr/bin/env python3
"""
===================================================================
GIT HISTORY SECRET SCANNER
===================================================================

PURPOSE:
    Lists the repositories owned by a GitHub account (or takes the clones
    already sitting in a local directory), clones them in full, and searches
    the ENTIRE commit history of every repository for sensitive keywords
    such as passwords, tokens and private keys. Each unique match is
    reported once per repository.

FEATURES:
    ✓ Full-history search: every commit reachable from every branch and tag
    ✓ Keyword wordlist compiled into a single extended regex
    ✓ Per-repository deduplication on (file, matched line)
    ✓ Streaming output, one finding per line as soon as it is found
    ✓ Text or JSON-lines finding output
    ✓ GitHub account listing with rate-limit backoff
    ✓ Full clones with retry and timeout protection
    ✓ Scan-only mode for directories of existing clones
    ✓ Confirmation hook before cloning
    ✓ Structured JSON logging for observability

HOW IT WORKS:
    1. `git rev-list --all` enumerates every reachable commit (oldest first)
    2. `git grep -n -z -E` searches the tree of each commit for the keywords
    3. Output records `commit:file NUL line NUL content` are parsed and deduplicated
    4. Findings are printed as:
         [repo] <11-char-commit> <file>:<line>\t  <content>

    Keywords are joined with `|` and NOT escaped, so a keyword containing
    regex metacharacters is matched as a regex.

REQUIREMENTS:
    git must be on PATH.
    Install dependencies:
        pip install -e .
    or
        pip install PyGithub aiofiles tqdm

USAGE:
    # List, clone and scan every public repository of a user
    python git_history_scanner.py -u octocat

    # Only some repositories, no prompt
    python git_history_scanner.py -u octocat -r hello-world,spoon-knife -y

    # Scan clones that already exist
    python git_history_scanner.py -s ./repositories

    # Custom wordlist, JSON-lines output
    python git_history_scanner.py -s ./repositories -w words.txt --output-format json

CONFIGURATION:
    Set via environment variables (command-line flags take precedence):
    - GITHUB_TOKEN: optional token passed to the GitHub API and git clone
    - WORDLIST_FILE: keyword file (default: wordlist.txt)
    - OUTPUT_DIR: directory clones are written to (default: repositories)
    - OUTPUT_FORMAT: text|json (default: text)
    - LOG_FORMAT: text|json (default: text)
    - SCAN_TIMEOUT_SECONDS: per git invocation while scanning (default: 600)
    - CLONE_TIMEOUT_SECONDS: per clone attempt (default: 300)

===================================================================
"""
import argparse
import asyncio
import inspect
import json
import logging
import os
import shutil
import sys
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import aiofiles
from github import Auth, Github, GithubException, RateLimitExceededException
from tqdm import tqdm

# ===================================================================
# CONFIGURATION & CONSTANTS
# ===================================================================

VERSION = "1.0.0"

BANNER = r"""
  ____ _ _     _   _ _     _                     ____
 / ___(_) |_  | | | (_)___| |_ ___  _ __ _   _  / ___|  ___ __ _ _ __
| |  _| | __| | |_| | / __| __/ _ \| '__| | | | \___ \ / __/ _` | '_ \
| |_| | | |_  |  _  | \__ \ || (_) | |  | |_| |  ___) | (_| (_| | | | |
 \____|_|\__| |_| |_|_|___/\__\___/|_|   \__, | |____/ \___\__,_|_| |_|
                                         |___/"""

# Environment-driven configuration
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")
WORDLIST_FILE = os.environ.get("WORDLIST_FILE", "wordlist.txt")
OUTPUT_DIR = os.environ.get("OUTPUT_DIR", "repositories")
OUTPUT_FORMAT = os.environ.get("OUTPUT_FORMAT", "text")  # text|json
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # text|json
SCAN_TIMEOUT_SECONDS = int(os.environ.get("SCAN_TIMEOUT_SECONDS", "600"))
CLONE_TIMEOUT_SECONDS = int(os.environ.get("CLONE_TIMEOUT_SECONDS", "300"))

# GitHub API
GITHUB_CLONE_URL = "https://github.com/{owner}/{name}.git"
REPOS_PER_PAGE = 100
GITHUB_API_BACKOFF_BASE = float(os.environ.get("GITHUB_API_BACKOFF_BASE", "2.0"))
GITHUB_API_MAX_RETRIES = int(os.environ.get("GITHUB_API_MAX_RETRIES", "5"))

# Operational constants
RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2
COMMIT_ABBREV_LENGTH = 11
GREP_COMMIT_CHUNK = 256           # commits per `git grep` call, keeps argv under the OS limit
GIT_GREP_NO_MATCH = 1             # `git grep` exit status when nothing matched


# ===================================================================
# ERRORS
# ===================================================================

class ScannerError(Exception):
    """Base class for errors that abort the whole run."""


class WordlistError(ScannerError):
    """The keyword file could not be read or holds no keywords."""


class CatalogError(ScannerError):
    """The repository list could not be produced."""


class StorageError(ScannerError):
    """The clone directory could not be created."""


class AcquisitionError(ScannerError):
    """A repository could not be cloned."""


class SearchError(ScannerError):
    """A git invocation failed while scanning one repository.

    Never escapes the scanner: the repository is skipped and the batch goes on.
    """


# ===================================================================
# LOGGING SETUP
# ===================================================================

class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add custom fields
        if hasattr(record, 'repo'):
            log_data["repo"] = record.repo
        if hasattr(record, 'finding_count'):
            log_data["finding_count"] = record.finding_count

        return json.dumps(log_data)


def setup_logging(log_format: str = "text") -> logging.Logger:
    """Setup logging with either text or JSON format.

    Logs go to stderr; stdout carries the findings only.
    """
    logger = logging.getLogger(__name__)
    logger.setLevel(logging.INFO)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    logger.addHandler(handler)
    return logger


logger = setup_logging(LOG_FORMAT)


# ===================================================================
# DATA MODEL
# ===================================================================

@dataclass(frozen=True)
class Repository:
    """A single scan target."""
    name: str
    size_hint: Optional[int] = None  # KB, as reported by GitHub
    local_path: Optional[Path] = None

    def with_local_path(self, path: Path) -> "Repository":
        return replace(self, local_path=path)


@dataclass(frozen=True)
class Finding:
    """A keyword match in one file at one commit."""
    repository: str
    commit: str
    file_path: str
    line_number: int
    content: str

    @property
    def dedup_key(self) -> Tuple[str, str]:
        # Commit and line number are left out on purpose: the same line
        # surviving through many commits is one finding.
        return (self.file_path, self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo": self.repository,
            "commit": self.commit,
            "path": self.file_path,
            "line": self.line_number,
            "content": self.content,
        }


class DedupSet:
    """Dedup keys seen during one repository scan."""

    def __init__(self):
        self._keys = set()

    def contains(self, key: Tuple[str, str]) -> bool:
        return key in self._keys

    def insert(self, key: Tuple[str, str]) -> None:
        self._keys.add(key)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        return len(self._keys)


@dataclass
class ScanConfig:
    """Resolved run configuration, built once at startup."""
    wordlist_path: Path
    username: Optional[str] = None
    repositories: List[str] = field(default_factory=list)
    scan_dir: Optional[Path] = None
    output_dir: Path = Path(OUTPUT_DIR)
    token: Optional[str] = None
    assume_yes: bool = False
    output_format: str = "text"
    scan_timeout: int = SCAN_TIMEOUT_SECONDS
    clone_timeout: int = CLONE_TIMEOUT_SECONDS


ConfirmCallback = Callable[[List[Repository]], bool]


# ===================================================================
# WORDLIST
# ===================================================================

async def read_wordlist(path: Path) -> List[str]:
    """
    Load the keyword file and return its whitespace-separated keywords.

    Args:
        path: Path to the wordlist file

    Returns:
        Keywords in file order

    Raises:
        WordlistError: if the file cannot be read or is empty
    """
    try:
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            content = await f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise WordlistError(f"wordlist error: {e}") from e

    keywords = content.split()
    if not keywords:
        raise WordlistError(f"wordlist error: no keywords in {path}")

    logger.debug(f"Loaded {len(keywords)} keywords from {path}")
    return keywords


# ===================================================================
# GIT SUBPROCESS
# ===================================================================

async def run_git(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    timeout: float = SCAN_TIMEOUT_SECONDS
) -> Tuple[int, str, str]:
    """
    Run a git command and buffer its whole output.

    The child is killed if the call times out or is cancelled.

    Args:
        args: Arguments after `git`
        cwd: Working directory
        timeout: Seconds before the child is killed

    Returns:
        Tuple of (returncode, stdout, stderr)

    Raises:
        OSError: if git or cwd does not exist
        asyncio.TimeoutError: if the command outlives timeout
    """
    proc = await asyncio.create_subprocess_exec(
        "git", *args,
        cwd=str(cwd) if cwd is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()

    return (
        proc.returncode,
        stdout.decode('utf-8', errors='replace'),
        stderr.decode('utf-8', errors='replace')
    )


# ===================================================================
# HISTORY SCANNER
# ===================================================================

def build_pattern(keywords: Sequence[str]) -> str:
    """Join keywords into one extended regex. Keywords are not escaped."""
    return "|".join(keywords)


def parse_grep_line(line: str, repository: str) -> Optional[Finding]:
    """
    Parse one `git grep -n -z <commit>` output line.

    With `-z` the line is `commit:file\\0line\\0content`, so file names and
    content may both contain colons. Lines without NULs fall back to
    `commit:file:line:content`, split on the first three colons only.

    Args:
        line: Raw output line
        repository: Repository name to tag the finding with

    Returns:
        Finding, or None for a malformed line
    """
    if "\0" in line:
        fields = line.split("\0", 2)
        if len(fields) < 3:
            return None
        location, line_number, content = fields
        # A commit hash never contains a colon
        parts = location.split(":", 1)
        if len(parts) < 2:
            return None
        commit, file_path = parts
    else:
        parts = line.split(":", 3)
        if len(parts) < 4:
            return None
        commit, file_path, line_number, content = parts

    if len(commit) < COMMIT_ABBREV_LENGTH or not line_number.isdecimal():
        return None

    return Finding(
        repository=repository,
        commit=commit[:COMMIT_ABBREV_LENGTH],
        file_path=file_path,
        line_number=int(line_number),
        content=content
    )


def parse_grep_output(output: str, repository: str) -> Iterator[Finding]:
    """Parse buffered `git grep` output, dropping malformed lines."""
    for line in output.split("\n"):
        if not line:
            continue
        finding = parse_grep_line(line, repository)
        if finding is None:
            logger.debug(f"Discarding malformed grep line in {repository}: {line[:80]!r}")
            continue
        yield finding


def _chunks(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class HistoryScanner:
    """Searches every reachable commit of a repository for keywords."""

    def __init__(
        self,
        keywords: Sequence[str],
        timeout: float = SCAN_TIMEOUT_SECONDS,
        chunk_size: int = GREP_COMMIT_CHUNK
    ):
        if not keywords:
            raise ValueError("at least one keyword is required")
        self.keywords = list(keywords)
        self.pattern = build_pattern(self.keywords)
        self.timeout = timeout
        self.chunk_size = chunk_size

    async def list_commits(self, repo_dir: Path) -> List[str]:
        """Every commit reachable from any ref, parents before children."""
        returncode, stdout, stderr = await run_git(
            ["rev-list", "--all", "--topo-order", "--reverse"],
            cwd=repo_dir,
            timeout=self.timeout
        )
        if returncode != 0:
            raise SearchError(f"git rev-list failed ({returncode}): {stderr.strip()[:200]}")
        return [line.strip() for line in stdout.split("\n") if line.strip()]

    async def grep_commits(self, repo_dir: Path, commits: Sequence[str]) -> str:
        """Search the trees of the given commits. Empty string when nothing matched."""
        returncode, stdout, stderr = await run_git(
            ["grep", "-n", "-z", "--no-color", "-E", "-e", self.pattern, *commits],
            cwd=repo_dir,
            timeout=self.timeout
        )
        if returncode == GIT_GREP_NO_MATCH:
            return ""
        if returncode != 0:
            raise SearchError(f"git grep failed ({returncode}): {stderr.strip()[:200]}")
        return stdout

    async def scan(self, repository: Repository) -> AsyncIterator[Finding]:
        """
        Yield each unique finding in the repository's full history.

        Failures are logged and end the scan of this repository with
        whatever was already yielded; they never raise.

        Args:
            repository: Repository with local_path set

        Yields:
            Findings in search order, first occurrence per (file, content)
        """
        if repository.local_path is None:
            logger.warning(f"{repository.name}: no local path, skipping",
                           extra={"repo": repository.name})
            return

        seen = DedupSet()

        try:
            commits = await self.list_commits(repository.local_path)
        except (SearchError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"{repository.name}: cannot enumerate commits: {str(e) or 'timeout'}",
                           extra={"repo": repository.name})
            return

        if not commits:
            logger.debug(f"{repository.name}: no commits")
            return

        logger.debug(f"{repository.name}: searching {len(commits)} commits")

        for chunk in _chunks(commits, self.chunk_size):
            try:
                output = await self.grep_commits(repository.local_path, chunk)
            except (SearchError, OSError, asyncio.TimeoutError) as e:
                logger.warning(f"{repository.name}: search failed: {str(e) or 'timeout'}",
                               extra={"repo": repository.name})
                return

            for finding in parse_grep_output(output, repository.name):
                if seen.contains(finding.dedup_key):
                    continue
                seen.insert(finding.dedup_key)
                yield finding

        if not seen:
            logger.debug(f"{repository.name}: no matches")


# ===================================================================
# REPORTING
# ===================================================================

def format_finding(finding: Finding) -> str:
    """Render a finding as one line of text."""
    return (
        f"[{finding.repository}] {finding.commit} "
        f"{finding.file_path}:{finding.line_number}\t  {finding.content}"
    )


class FindingReporter:
    """Writes findings to a stream as they arrive."""

    def __init__(self, stream=None, output_format: str = "text"):
        if output_format not in ("text", "json"):
            raise ValueError(f"unknown output format: {output_format}")
        self.stream = stream if stream is not None else sys.stdout
        self.output_format = output_format
        self.counts = Counter()

    def emit(self, finding: Finding) -> None:
        if self.output_format == "json":
            line = json.dumps(finding.to_dict())
        else:
            line = format_finding(finding)
        self.stream.write(line + "\n")
        self.stream.flush()
        self.counts[finding.repository] += 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())


# ===================================================================
# REPOSITORY CATALOG
# ===================================================================

async def github_api_call_with_backoff(func, *args, max_retries: int = GITHUB_API_MAX_RETRIES, **kwargs):
    """
    Execute GitHub API call with exponential backoff on rate limit errors.

    Any other error is raised on the first attempt.

    Args:
        func: Function to call (can be sync or async)
        *args: Positional arguments for func
        max_retries: Maximum number of attempts
        **kwargs: Keyword arguments for func

    Returns:
        Result of func call
    """
    for attempt in range(max_retries):
        try:
            if inspect.iscoroutinefunction(func):
                return await func(*args, **kwargs)
            return func(*args, **kwargs)

        except GithubException as e:
            rate_limited = isinstance(e, RateLimitExceededException) or (
                e.status == 403 and 'rate limit' in str(e).lower()
            )
            if not rate_limited or attempt == max_retries - 1:
                raise

            wait_time = GITHUB_API_BACKOFF_BASE ** attempt
            logger.warning(f"GitHub rate limit hit (attempt {attempt + 1}/{max_retries}), "
                           f"backing off for {wait_time:.1f}s")
            await asyncio.sleep(wait_time)

    raise CatalogError(f"GitHub API call failed after {max_retries} attempts")


async def fetch_repositories(username: str, token: Optional[str] = None) -> List[Repository]:
    """
    List the repositories of a GitHub user or organization.

    Only the first page (100 repositories) is fetched.

    Args:
        username: Account login
        token: Optional API token

    Returns:
        Repositories in the order GitHub returns them

    Raises:
        CatalogError: on API or network failure
    """
    auth = Auth.Token(token) if token else None
    github_client = Github(auth=auth, per_page=REPOS_PER_PAGE)

    try:
        logger.info(f"Fetching repositories of {username}...")
        user = await github_api_call_with_backoff(github_client.get_user, username)
        page = await github_api_call_with_backoff(user.get_repos().get_page, 0)
    except GithubException as e:
        raise CatalogError(f"fetch error: GitHub API error ({e.status}): {e.data}") from e
    except OSError as e:
        # requests' network errors derive from OSError
        raise CatalogError(f"fetch error: {e}") from e
    finally:
        github_client.close()

    repositories = [Repository(name=repo.name, size_hint=repo.size) for repo in page]
    logger.info(f"✓ Found {len(repositories)} repositories for {username}")
    return repositories


def filter_repositories(repositories: List[Repository], names: Sequence[str]) -> List[Repository]:
    """
    Restrict repositories to the requested names, in request order.

    An empty name list keeps everything.

    Raises:
        CatalogError: if a requested repository does not exist
    """
    if not names:
        return list(repositories)

    by_name = {repo.name: repo for repo in repositories}
    selected = []
    for name in names:
        if name not in by_name:
            raise CatalogError(f"filter error: repository '{name}' not found")
        selected.append(by_name[name])
    return selected


def list_local_repositories(scan_dir: Path) -> List[Repository]:
    """
    Treat every subdirectory of scan_dir as a repository, sorted by name.

    Raises:
        CatalogError: if scan_dir cannot be read
    """
    try:
        entries = sorted(scan_dir.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise CatalogError(f"scan error: {e}") from e

    return [
        Repository(name=entry.name, local_path=entry)
        for entry in entries
        if entry.is_dir()
    ]


# ===================================================================
# CONFIRMATION
# ===================================================================

def prompt_continue(repositories: List[Repository], stream=None, input_func=input) -> bool:
    """
    Show the repositories and their total size, then ask to continue.

    Only `Y` or `y` continues.
    """
    stream = stream if stream is not None else sys.stderr
    total_size = 0

    stream.write("Repositories:\n")
    for repo in repositories:
        size = repo.size_hint or 0
        stream.write(f" - {repo.name} ({size} KB)\n")
        total_size += size
    stream.write(f"Total size is {total_size} KB, continue? (Y/n): ")
    stream.flush()

    try:
        answer = input_func()
    except EOFError:
        return False
    return answer.strip() in ("Y", "y")


def always_confirm(repositories: List[Repository]) -> bool:
    """Confirmation hook for `--yes`: always continue."""
    return True


# ===================================================================
# REPOSITORY ACQUISITION
# ===================================================================

def prepare_storage(output_dir: Path) -> Path:
    """
    Create the directory clones are written to. It must not exist yet.

    Raises:
        StorageError: if the directory exists or cannot be created
    """
    try:
        output_dir.mkdir(parents=True)
    except OSError as e:
        raise StorageError(f"Error creating {output_dir} directory: {e}") from e
    return output_dir


def build_clone_url(owner: str, name: str, token: Optional[str] = None) -> str:
    url = GITHUB_CLONE_URL.format(owner=owner, name=name)
    if token:
        url = url.replace("https://", f"https://x-access-token:{token}@", 1)
    return url


def redact_clone_url(url: str) -> str:
    """Drop user and password from a clone URL. Local paths are returned as-is."""
    parts = urlsplit(url)
    if not (parts.username or parts.password):
        return url
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


async def _redact_origin(
    repository: Repository,
    repo_dir: Path,
    clone_url: str,
    timeout: float,
    token: Optional[str]
) -> None:
    """Rewrite remote.origin.url so the clone's .git/config holds no credentials."""
    clean_url = redact_clone_url(clone_url)
    if clean_url == clone_url:
        return

    try:
        returncode, _, stderr = await run_git(
            ["remote", "set-url", "origin", clean_url],
            cwd=repo_dir,
            timeout=timeout
        )
    except (asyncio.TimeoutError, OSError) as e:
        returncode, stderr = -1, str(e) or "timeout"

    if returncode != 0:
        error = stderr.strip()[:200]
        if token:
            error = error.replace(token, "***")
        raise AcquisitionError(f"Error resetting origin of {repository.name}: {error}")


async def clone_repository(
    repository: Repository,
    clone_url: str,
    output_dir: Path,
    timeout: float = CLONE_TIMEOUT_SECONDS,
    token: Optional[str] = None
) -> Repository:
    """
    Full clone of one repository into output_dir/<name>, with retries.

    Args:
        repository: Repository to clone
        clone_url: URL or path git clones from
        output_dir: Parent directory of the clone
        timeout: Seconds per attempt
        token: Token to mask in error messages

    Returns:
        The repository with local_path set

    Raises:
        AcquisitionError: if every attempt fails
    """
    repo_dir = output_dir / repository.name
    last_error = ""

    for attempt in range(RETRY_ATTEMPTS):
        # Clear what a failed attempt left behind
        if repo_dir.exists():
            shutil.rmtree(repo_dir, ignore_errors=True)

        logger.debug(f"Cloning {repository.name} (attempt {attempt + 1}/{RETRY_ATTEMPTS})")

        try:
            returncode, _, stderr = await run_git(
                ["clone", "--quiet", clone_url, str(repo_dir)],
                timeout=timeout
            )
        except asyncio.TimeoutError:
            last_error = f"timed out after {timeout}s"
        except OSError as e:
            last_error = str(e)
        else:
            if returncode == 0:
                await _redact_origin(repository, repo_dir, clone_url, timeout, token)
                return repository.with_local_path(repo_dir)
            last_error = stderr.strip()[:200]

        if token:
            last_error = last_error.replace(token, "***")
        logger.warning(f"Clone failed for {repository.name}: {last_error}",
                       extra={"repo": repository.name})

        if attempt < RETRY_ATTEMPTS - 1:
            await asyncio.sleep(RETRY_DELAY_SECONDS * (attempt + 1))

    raise AcquisitionError(f"Error cloning {repository.name}: {last_error}")


async def clone_repositories(
    repositories: List[Repository],
    owner: str,
    output_dir: Path,
    token: Optional[str] = None,
    timeout: float = CLONE_TIMEOUT_SECONDS
) -> List[Repository]:
    """Clone repositories one after another. The first failure aborts the run."""
    cloned = []

    with tqdm(total=len(repositories), desc="Cloning repos", unit="repo") as pbar:
        for repository in repositories:
            clone_url = build_clone_url(owner, repository.name, token)
            cloned.append(await clone_repository(
                repository, clone_url, output_dir, timeout=timeout, token=token
            ))
            pbar.update(1)

    logger.info(f"✓ All {len(cloned)} repositories have been cloned successfully")
    return cloned


# ===================================================================
# MAIN ORCHESTRATION
# ===================================================================

async def scan_repositories(
    repositories: List[Repository],
    history_scanner: HistoryScanner,
    reporter: FindingReporter
) -> int:
    """
    Scan repositories in order, streaming findings to the reporter.

    Returns:
        Total number of findings
    """
    for repository in repositories:
        logger.info(f"Scanning history of {repository.name}", extra={"repo": repository.name})

        async for finding in history_scanner.scan(repository):
            reporter.emit(finding)

        count = reporter.counts[repository.name]
        logger.info(f"{repository.name}: {count} finding(s)",
                    extra={"repo": repository.name, "finding_count": count})

    logger.info(f"Scan complete. {reporter.total} finding(s) in {len(repositories)} repositories",
                extra={"finding_count": reporter.total})
    return reporter.total


async def run(config: ScanConfig, confirm: ConfirmCallback = prompt_continue) -> int:
    """
    Load keywords, gather repositories and scan them.

    Returns:
        Process exit code

    Raises:
        ScannerError: on any batch-aborting failure
    """
    keywords = await read_wordlist(config.wordlist_path)
    history_scanner = HistoryScanner(keywords, timeout=config.scan_timeout)
    reporter = FindingReporter(output_format=config.output_format)

    if config.scan_dir is not None:
        logger.info(f"Scanning existing directory: {config.scan_dir}")
        repositories = list_local_repositories(config.scan_dir)
    else:
        repositories = await fetch_repositories(config.username, config.token)
        repositories = filter_repositories(repositories, config.repositories)

        if not confirm(repositories):
            logger.info("Not continuing")
            return 0

        logger.info("Continuing...")
        prepare_storage(config.output_dir)
        repositories = await clone_repositories(
            repositories,
            config.username,
            config.output_dir,
            token=config.token,
            timeout=config.clone_timeout
        )

    await scan_repositories(repositories, history_scanner, reporter)
    return 0


# ===================================================================
# COMMAND LINE INTERFACE
# ===================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Search the full git history of GitHub or local repositories for secret keywords',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
ENVIRONMENT VARIABLES:
  GITHUB_TOKEN           Optional token for the GitHub API and cloning
  WORDLIST_FILE          Keyword file (default: wordlist.txt)
  OUTPUT_DIR             Clone directory (default: repositories)
  SCAN_TIMEOUT_SECONDS   Timeout per git call while scanning (default: 600)
  CLONE_TIMEOUT_SECONDS  Timeout per clone attempt (default: 300)

USAGE EXAMPLES:
  python git_history_scanner.py -u octocat
  python git_history_scanner.py -u octocat -r hello-world -y
  python git_history_scanner.py -s ./repositories -w words.txt

EXIT CODES:
  0   Success (with or without findings)
  1   Error (bad wordlist, API failure, clone failure, etc.)
  130 Interrupted by user (Ctrl+C)
        '''
    )

    parser.add_argument('-u', '--user', metavar='NAME',
                        help='GitHub user or organization whose repositories are scanned')
    parser.add_argument('-r', '--repos', metavar='A,B',
                        help='Only these repositories, separated by comma')
    parser.add_argument('-w', '--wordlist', metavar='FILE', default=WORDLIST_FILE,
                        help=f'Wordlist file (default: {WORDLIST_FILE})')
    parser.add_argument('-s', '--scan-dir', metavar='DIR',
                        help='Scan existing clones in DIR (skip listing and cloning)')
    parser.add_argument('-o', '--output-dir', metavar='DIR', default=OUTPUT_DIR,
                        help=f'Directory to clone into (default: {OUTPUT_DIR})')
    parser.add_argument('-y', '--yes', action='store_true',
                        help='Do not ask for confirmation before cloning')
    parser.add_argument('--output-format', choices=['text', 'json'], default=OUTPUT_FORMAT,
                        help=f'Finding output format (default: {OUTPUT_FORMAT})')
    parser.add_argument('--log-format', choices=['text', 'json'], default=LOG_FORMAT,
                        help=f'Logging format (default: {LOG_FORMAT})')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose debug logging')
    parser.add_argument('--version', action='version',
                        version=f'{BANNER}\nVersion: {VERSION}')
    return parser


def build_config(args: argparse.Namespace) -> ScanConfig:
    """Resolve parsed arguments and environment defaults into a ScanConfig."""
    selected = [name.strip() for name in args.repos.split(",") if name.strip()] if args.repos else []

    return ScanConfig(
        wordlist_path=Path(args.wordlist).expanduser(),
        username=args.user,
        repositories=selected,
        scan_dir=Path(args.scan_dir).expanduser() if args.scan_dir else None,
        output_dir=Path(args.output_dir).expanduser(),
        token=GITHUB_TOKEN,
        assume_yes=args.yes,
        output_format=args.output_format,
        scan_timeout=SCAN_TIMEOUT_SECONDS,
        clone_timeout=CLONE_TIMEOUT_SECONDS
    )


# ===================================================================
# MAIN ENTRY POINT
# ===================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point with validation and error handling."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_format)
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    if not args.scan_dir and not args.user:
        logger.error("Error: -u is required unless -s is specified")
        parser.print_usage(sys.stderr)
        return 1

    config = build_config(args)
    confirm = always_confirm if config.assume_yes else prompt_continue

    for banner_line in BANNER.strip("\n").splitlines():
        logger.info(banner_line)
    logger.info(f"Version: {VERSION}")

    try:
        return asyncio.run(run(config, confirm))
    except ScannerError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Scan interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
