"""pdfchat: question answering over uploaded PDF documents."""
