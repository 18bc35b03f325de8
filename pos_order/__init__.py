"""
POS Order — 注文作成エンジン

レジ担当者がリモートの商取引 API (TableCRM) に対して
販売伝票を組み立てて送信するためのライブラリ。
表示層はこのパッケージの OrderSession だけを知っていればよい。
"""
