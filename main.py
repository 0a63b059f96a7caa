#!/usr/bin/env python3
"""WhatsApp Business Assistant CLI."""

import argparse
import logging
import sys
from config.settings import Settings
from schemas.personality import PersonalityProfile, Tone
from orchestrator import ConversationOrchestrator


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="WhatsApp Business Assistant - personality-shaped replies to customer messages"
    )
    parser.add_argument(
        "--tenant",
        "-t",
        type=str,
        required=True,
        help="Tenant (business account) id"
    )
    parser.add_argument(
        "--conversation",
        "-c",
        type=str,
        default="cli",
        help="Conversation id (default: cli)"
    )
    parser.add_argument(
        "--message",
        "-m",
        type=str,
        help="Customer message to answer (omit to read messages from stdin, one per line)"
    )
    parser.add_argument(
        "--tone",
        type=str,
        choices=[t.value for t in Tone],
        help="Personality tone for the tenant (default: system profile)"
    )
    parser.add_argument(
        "--language",
        type=str,
        help="Reply language code, e.g. en or id"
    )
    parser.add_argument(
        "--sheet",
        type=str,
        help="Knowledge sheet for the tenant: CSV path or published CSV URL"
    )
    parser.add_argument(
        "--no-memory",
        action="store_true",
        help="Disable conversation memory"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Create settings
    settings = Settings(
        memory_enabled=not args.no_memory,
        knowledge_sheets={args.tenant: args.sheet} if args.sheet else {},
        verbose=args.verbose,
    )

    # Initialize orchestrator
    orchestrator = ConversationOrchestrator.from_settings(settings)
    if args.tone or args.language:
        profile_fields = {"tenant_id": args.tenant}
        if args.tone:
            profile_fields["tone"] = Tone(args.tone)
        if args.language:
            profile_fields["language"] = args.language
        orchestrator.profiles.put(PersonalityProfile(**profile_fields))
    if args.sheet and orchestrator.knowledge:
        orchestrator.knowledge.refresh(args.tenant)

    messages = [args.message] if args.message else (line.rstrip("\n") for line in sys.stdin)

    # Process messages
    try:
        for message in messages:
            reply = orchestrator.handle(args.tenant, args.conversation, message)
            print(reply.text)
            if args.verbose:
                event = reply.event
                print(
                    f"  [{reply.state.value}] provider={reply.provider_used} "
                    f"latency={event.latency_ms:.0f}ms outcomes={[o.value for o in event.outcomes]}",
                    file=sys.stderr
                )
    except KeyboardInterrupt:
        pass
    finally:
        orchestrator.shutdown()


if __name__ == "__main__":
    main()
