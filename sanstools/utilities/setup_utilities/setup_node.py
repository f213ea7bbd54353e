from sanstools.utilities.credentials import CredentialManager, get_credentials_directory, normalize_private_key
from sanstools.configuration.constants import CredentialKey, DEFAULT_CLASSIFIER_URL
from sanstools.utilities.exceptions import InvalidCredentialError
from eth_account import Account
import getpass
import json

def setup_node():
    print("\nSansTools Node Setup")
    print("====================")
    print("This script will help you set up your node configuration and credentials.")

    while True:
        network = input("\nAre you setting up for testnet or mainnet? (testnet/mainnet): ").strip().lower()
        if network in ['testnet', 'mainnet']:
            break
        print("Please enter either 'testnet' or 'mainnet'")

    print("\nNext, you'll need to specify your node name.")
    print("This will be used to identify your node's credentials.")
    if network == 'testnet':
        print("Since this is testnet, a '_testnet' suffix will automatically be added to your node name.")
    node_name = input("Enter your node name: ").strip()
    node_name = f"{node_name}_testnet" if network == 'testnet' else node_name

    config = {
        'node_name': node_name,
        'classifier_url': input(f"Classifier endpoint [{DEFAULT_CLASSIFIER_URL}]: ").strip() or DEFAULT_CLASSIFIER_URL,
    }
    token_address = input("Reward token contract address (blank for the network default): ").strip()
    if token_address:
        config['token_address'] = token_address
    elif network == 'testnet':
        print("WARNING: testnet has no default token; payouts will fail until 'token_address' is set.")

    print("\nNow you'll need to enter a password to encrypt your credentials.\n")

    while True:
        encryption_password = getpass.getpass("Enter an encryption password (min 8 characters): ")
        if len(encryption_password) >= 8:
            if encryption_password == getpass.getpass("Confirm encryption password: "):
                break
            print("Passwords don't match. Please try again.\n")
        else:
            print("Password must be at least 8 characters long. Please try again.\n")

    cm = CredentialManager(encryption_password)
    credentials_dict = {}

    while True:
        try:
            signing_key = normalize_private_key(getpass.getpass("EVM private key of the payout wallet: "))
            break
        except InvalidCredentialError as e:
            print(f"{e}. Please try again.")
    credentials_dict[CredentialKey.SIGNING_KEY.for_node(node_name)] = signing_key
    config['payout_address'] = Account.from_key(signing_key).address

    hf_key = getpass.getpass("Hugging Face API key (blank to skip): ").strip()
    if hf_key:
        credentials_dict[CredentialKey.HUGGINGFACE.for_node(node_name)] = hf_key

    db_name = 'sanstools_db_testnet' if network == 'testnet' else 'sanstools_db'
    print("\nLet's build your PostgreSQL connection string.")
    print("Default values will be shown in [brackets]. Press Enter to use them.")
    user = input("PostgreSQL username [sanstools]: ").strip() or "sanstools"
    password = getpass.getpass("PostgreSQL password: ").strip()
    host = input("Database host [localhost]: ").strip() or "localhost"
    port = input("Database port [5432]: ").strip() or "5432"
    credentials_dict[CredentialKey.POSTGRES.for_node(node_name)] = f"postgresql://{user}:{password}@{host}:{port}/{db_name}"

    config_file = get_credentials_directory() / f"sans_node_{network}_config.json"
    with open(config_file, 'w') as f:
        json.dump(config, f, indent=2)

    cm.enter_and_encrypt_credential(credentials_dict)
    print("\nSetup complete!")
    print(f"Credentials stored in: {cm.db_path}")
    print(f"Node configuration stored in: {config_file}")
    print(f"Payout wallet: {config['payout_address']}")
    print("Run `sanstools init-db` next to create the ledger table.")

def main():
    try:
        setup_node()
    except KeyboardInterrupt:
        print("\nOperation cancelled.")

if __name__ == "__main__":
    main()
