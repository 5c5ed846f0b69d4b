"""ShipHero webhook intake.

Every webhook is signature-verified, acknowledged immediately, and processed
on the in-process work queue.
"""
