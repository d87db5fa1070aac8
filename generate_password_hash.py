#!/usr/bin/env python3
"""
Maintenance password hash generator.
Prints the ADMIN_PASSWORD_HASH that guards the regenerate and orphan endpoints.
"""
import getpass

from gallery_manager.utils.auth import hash_password, verify_password


def main():
    print("=" * 60)
    print("Gallery Maintenance Password Hash Generator")
    print("=" * 60)
    print()

    # Get password securely (won't echo to screen)
    password = getpass.getpass("Enter maintenance password: ")
    if not password:
        print("\nError: Password cannot be empty")
        return

    if password != getpass.getpass("Confirm password: "):
        print("\nError: Passwords do not match")
        return

    hashed = hash_password(password)
    if not verify_password(password, hashed):
        print("\nError: Generated hash does not verify")
        return

    print("\nCopy this line to your .env file:\n")
    print(f"ADMIN_PASSWORD_HASH={hashed}")
    print()


if __name__ == "__main__":
    main()
