#!/usr/bin/env python3
"""
gift-calc command line entry point
"""

import logging
import os
import shutil
import subprocess
import sys
from typing import Callable, List, Optional, Sequence

from . import __version__
from .argument_parser import ArgumentParser
from .calculator import GiftCalculator, GiftResult, RandomSource, format_output
from .config import (
    Command,
    ConfigStore,
    GiftConfig,
    load_environment_overrides,
    resolve_defaults,
    run_config_wizard,
)
from .naughty_list import NaughtyList, format_entry, parse_naughty_list_arguments
from .spending_log import SpendingLog, format_matched_gift
from .spendings import USAGE as SPENDINGS_USAGE
from .spendings import format_spendings_output, parse_spendings_arguments, summarize_spendings
from .toplist import USAGE as TOPLIST_USAGE
from .toplist import format_currency_list, format_toplist_output, parse_toplist_arguments, summarize_toplist

logger = logging.getLogger(__name__)

CLIPBOARD_COMMANDS = (
    ("pbcopy",),
    ("wl-copy",),
    ("xclip", "-selection", "clipboard"),
)

HELP_TEXT = """
Gift Calculator - CLI Tool

DESCRIPTION:
  Suggests a gift amount based on a base value with configurable random
  variation, friend score and nice score influences.

USAGE:
  gift-calc [options] [name]
  gift-calc init-config
  gift-calc update-config
  gift-calc log
  gift-calc naughty-list <name>            # Add person to naughty list
  gift-calc naughty-list list              # List all naughty people
  gift-calc naughty-list --remove <name>   # Remove from naughty list
  gift-calc naughty-list --search <term>   # Search naughty list
  gift-calc spendings --days 30            # Spendings over the last 30 days
  gift-calc spendings -f 2024-01-01 -t 2024-12-31
  gift-calc toplist                        # Recipients ranked by total gifts
  gift-calc toplist --gift-count -l 5      # Top 5 by number of gifts
  gift-calc -m [name]                      # Repeat the last gift (for name)
  gcalc [options]                          # Short alias

COMMANDS:
  init-config                 Create the configuration file interactively
  update-config               Update the existing configuration file
  log                         Show the gift calculation log
  naughty-list, nl            Manage the naughty list
  spendings, s                Show total spendings for a period
  toplist, tl                 Rank recipients by gift totals or gift count
  version, --version          Show version information

OPTIONS:
  -h, --help                  Show this help message
  -b, --basevalue <number>    Base value for the calculation (default: 70)
  -v, --variation <percent>   Variation percentage, 0-100 (default: 20)
  -f, --friendscore <1-10>    Friend score biasing the amount (default: 5)
  -n, --nicescore <0-10>      Nice score (default: 5)
                              0 = no gift, 1-3 = fixed reductions, 4-10 = bias
  -c, --currency <code>       Currency code to display (default: SEK)
  -d, --decimals <0-10>       Number of decimal places (default: 2)
  --name <name>               Recipient name to include in the output
  -m, --match [name]          Reuse the last logged gift, optionally for a
                              recipient, keeping its amount and currency
  --max                       Use the maximum amount (base + variation)
  --min                       Use the minimum amount (base - variation)
  --asshole, --dickhead       Lowest friend and nice scores (1 and 1)
  --no-log                    Do not write the calculation to the log
  -cp, --copy                 Copy the amount to the clipboard

CONFIGURATION:
  Config is stored at ~/.config/gift-calc/.config.json
  (override the directory with GIFT_CALC_CONFIG_DIR).
  Command line options override everything else. The GIFT_CALC_BASE_VALUE,
  GIFT_CALC_VARIATION, GIFT_CALC_CURRENCY and GIFT_CALC_DECIMALS environment
  variables override the config file, which overrides built-in defaults.

  Recipients on the naughty list always get 0.
"""


def configure_logging() -> None:
    debug = os.getenv("GIFT_CALC_DEBUG", "false").lower() == "true"
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def copy_to_clipboard(text: str) -> bool:
    """Copy text using the first clipboard tool found on PATH"""
    for command in CLIPBOARD_COMMANDS:
        if shutil.which(command[0]) is None:
            continue
        try:
            subprocess.run(command, input=text.encode("utf-8"), check=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Clipboard command %s failed: %s", command[0], e)
            continue
        return True
    return False


class GiftCalcCLI:
    """Dispatches parsed commands to the calculator and file collaborators"""

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        naughty_list: Optional[NaughtyList] = None,
        spending_log: Optional[SpendingLog] = None,
        random_source: Optional[RandomSource] = None,
        stdout=None,
        stderr=None,
        prompt: Callable[[str], str] = input,
    ):
        self.config_store = config_store or ConfigStore()
        self.naughty_list = naughty_list or NaughtyList()
        self.spending_log = spending_log or SpendingLog()
        self.calculator = GiftCalculator(random_source)
        self.parser = ArgumentParser()
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.prompt = prompt

    def out(self, text: str = "") -> None:
        print(text, file=self.stdout)

    def err(self, text: str) -> None:
        print(text, file=self.stderr)

    def run(self, argv: Sequence[str]) -> int:
        defaults = resolve_defaults(self.config_store.load(), load_environment_overrides())
        result = self.parser.parse(argv, defaults)
        if not result.success:
            self.err(f"Error: {result.error}")
            self.err("Use --help for usage information.")
            return 1

        config = result.config
        if config.show_help:
            self.out(HELP_TEXT.strip("\n"))
            return 0

        handlers = {
            Command.CALCULATE: self.handle_calculate,
            Command.VERSION: self.handle_version,
            Command.INIT_CONFIG: self.handle_init_config,
            Command.UPDATE_CONFIG: self.handle_update_config,
            Command.LOG: self.handle_log,
            Command.NAUGHTY_LIST: self.handle_naughty_list,
            Command.SPENDINGS: self.handle_spendings,
            Command.TOPLIST: self.handle_toplist,
        }
        try:
            return handlers[config.command](config)
        except OSError as e:
            logger.debug("Command %s failed", config.command.value, exc_info=True)
            self.err(f"Error: {e}")
            return 1

    def determine_result(self, config: GiftConfig) -> GiftResult:
        if config.recipient_name and self.naughty_list.contains(config.recipient_name):
            return self.calculator.naughty_result(config)
        return self.calculator.calculate(config)

    def handle_calculate(self, config: GiftConfig) -> int:
        if config.match_previous:
            return self.handle_match(config)

        result = self.determine_result(config)
        self.out(result.display)
        if result.on_naughty_list:
            self.out(f"{result.recipient_name} is on the naughty list - amount set to 0")
        return self.deliver(result, config)

    def handle_match(self, config: GiftConfig) -> int:
        """Repeat the last logged gift, overall or for one recipient"""
        wanted = config.match_recipient_name
        entry = self.spending_log.last_entry(wanted)
        if entry is None:
            self.out(f"No previous gift found for {wanted}." if wanted else "No previous gifts found.")
            return 0

        naughty = bool(entry.recipient_name) and self.naughty_list.contains(entry.recipient_name)
        result = self.calculator.matched_result(
            entry.amount, entry.currency, entry.recipient_name, on_naughty_list=naughty
        )
        self.out(result.display)
        label = f"Previous gift for {wanted}" if wanted else "Previous gift"
        self.out(f"{label}: {format_matched_gift(entry)}")
        if naughty:
            self.out(f"Override: {entry.recipient_name} is on the naughty list - amount set to 0")
        return self.deliver(result, config)

    def deliver(self, result: GiftResult, config: GiftConfig) -> int:
        """Clipboard copy and log append for a printed result"""
        if config.copy_to_clipboard:
            if copy_to_clipboard(format_output(result.amount, result.currency)):
                self.out("Amount copied to clipboard!")
            else:
                self.err("Failed to copy to clipboard: no clipboard tool available")

        if config.log_to_file:
            try:
                self.spending_log.append(
                    result.amount,
                    result.currency,
                    result.recipient_name,
                    on_naughty_list=result.on_naughty_list,
                )
            except OSError as e:
                self.err(f"Failed to log to file: {e}")
        return 0

    def handle_version(self, config: GiftConfig) -> int:
        self.out(f"gift-calc {__version__}")
        return 0

    def handle_init_config(self, config: GiftConfig) -> int:
        run_config_wizard(self.config_store, prompt=self.prompt, output=self.out)
        return 0

    def handle_update_config(self, config: GiftConfig) -> int:
        run_config_wizard(self.config_store, prompt=self.prompt, output=self.out, update=True)
        return 0

    def handle_log(self, config: GiftConfig) -> int:
        if not self.spending_log.exists():
            self.out("No log file found. Gift calculations are logged unless --no-log is given.")
            return 0
        self.out(f"Log file: {self.spending_log.path}")
        self.out(self.spending_log.read_text().rstrip("\n"))
        return 0

    def handle_naughty_list(self, config: GiftConfig) -> int:
        command = parse_naughty_list_arguments(config.command_args)
        if not command.success:
            self.err(f"Error: {command.error}")
            return 1

        if command.action == "list":
            entries = self.naughty_list.list_entries()
            if not entries:
                self.out("Naughty list is empty.")
                return 0
            self.out("Naughty list:")
            for entry in entries:
                self.out(f"  {format_entry(entry)}")
            return 0

        if command.action == "search":
            matches = self.naughty_list.search(command.search_term)
            if not matches:
                self.out(f'No names on the naughty list start with "{command.search_term}".')
                return 0
            for entry in matches:
                self.out(f"  {format_entry(entry)}")
            return 0

        if command.action == "remove":
            outcome = self.naughty_list.remove(command.name)
        else:
            outcome = self.naughty_list.add(command.name)
        if outcome.success:
            self.out(outcome.message)
            return 0
        self.err(outcome.message)
        return 1

    def handle_spendings(self, config: GiftConfig) -> int:
        query = parse_spendings_arguments(config.command_args)
        if not query.success:
            self.err(f"Error: {query.error}")
            self.err("")
            self.err(SPENDINGS_USAGE)
            return 1

        try:
            from_date, to_date = query.date_range()
        except ValueError as e:
            self.err(f"Error: {e}")
            return 1
        summary = summarize_spendings(self.spending_log, from_date, to_date)
        self.out(format_spendings_output(summary, from_date, to_date))
        return 0

    def handle_toplist(self, config: GiftConfig) -> int:
        query = parse_toplist_arguments(config.command_args)
        if not query.success:
            self.err(f"Error: {query.error}")
            self.err("")
            self.err(TOPLIST_USAGE)
            return 1

        data = summarize_toplist(self.spending_log, query.from_date, query.to_date)
        if query.list_currencies:
            self.out(format_currency_list(data))
            return 0
        if query.currency and data.currencies and query.currency not in data.currencies:
            self.err(f"Error: Currency '{query.currency}' not found in gift history.")
            self.err(f"Available currencies: {', '.join(data.currencies)}")
            return 1

        self.out(format_toplist_output(data, query))
        return 0


def main(argv: Optional[List[str]] = None) -> int:
    configure_logging()
    argv = sys.argv[1:] if argv is None else argv
    return GiftCalcCLI().run(argv)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
