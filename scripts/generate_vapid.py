#!/usr/bin/env python3
"""
Generate VAPID keys for web push notifications.
Run this script and add the output to your environment variables.
"""

from doorbell.webpush import generate_vapid_key_pair


if __name__ == "__main__":
    keys = generate_vapid_key_pair()

    print("\n=== VAPID Keys Generated ===\n")
    print("Add these to your environment variables:\n")
    print(f"VAPID_PUBLIC_KEY={keys.public_key}")
    print(f"VAPID_PRIVATE_KEY={keys.private_key}")
    print("VAPID_CONTACT_EMAIL=admin@doorbell.local")
    print("\n============================\n")
