#!/usr/bin/env python3
"""Examples - Sample data for `ccli init` and usage text for `ccli examples`."""

EXAMPLE_ENTRIES = {
    "snippets": {
        "welcome": {
            "content": "Welcome to Codex CLI! This is a sample snippet to get you started."
        },
        "git-push": {
            "content": "git push origin $(git branch --show-current)",
            "description": "Push to the current branch"
        },
        "docker-clean": {
            "content": "docker system prune -af --volumes",
            "description": "Clean all unused Docker resources"
        }
    },
    "paths": {
        "github": "/Users/user/Projects/github.com",
        "codexcli": "cd ${paths.github}/codexCLI"
    },
    "server": {
        "production": {
            "ip": "192.168.1.100",
            "user": "admin",
            "port": "22",
            "domain": "prod.example.com"
        },
        "staging": {
            "ip": "192.168.1.200",
            "user": "testuser",
            "port": "22",
            "domain": "staging.example.com"
        },
        "development": {
            "ip": "127.0.0.1",
            "user": "devuser",
            "port": "3000"
        }
    }
}

EXAMPLE_ALIASES = {
    "prodip": "server.production.ip",
    "produser": "server.production.user",
    "stageip": "server.staging.ip",
    "devip": "server.development.ip",
    "welcome": "snippets.welcome.content",
    "gitpush": "snippets.git-push.content",
    "codexcli": "paths.codexcli",
    "allservers": "server"
}

USAGE = """\
Storing values
  ccli set server.production.ip 192.168.1.100
  ccli set api.token s3cret --encrypt
  ccli set server.production.ip 10.0.0.1 --alias prodip

Reading values
  ccli get                      all entries
  ccli get server --tree        a subtree as a tree
  ccli get prodip --raw         bare value through an alias
  ccli get --keys-only          paths only
  ccli get api.token --decrypt

References
  ccli set ssh.prod "ssh ${server.production.user}@${prodip}"
  ccli get ssh.prod --source    show the value without expanding

Searching and organizing
  ccli find prod --keys-only
  ccli rename server.staging server.qa
  ccli confirm set server.production
  ccli remove server.development

Moving data around
  ccli export entries --pretty -o entries.json
  ccli import entries entries.json --merge --preview
  ccli reset aliases --force
  ccli log -n 20
"""
