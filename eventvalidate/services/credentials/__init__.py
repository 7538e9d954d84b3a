from .issuer import CredentialIssuer, IssuedCredential, credential_issuer
